"""
Module: leasing_modules.installment.orm
Responsibility:
    Persistence for scheduled installments.  Rows are written once, in a
    batch, when the owning reservation is created.

Invariants enforced:
    - (reservation_id, sequence) is unique.
    - reservation_id, amount, due_date and sequence are frozen after insert
      (ORM listener in leasing_kernel.db.immutability); only status,
      paid_date and notes change.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leasing_kernel.db.base import TrackedBase, UUIDString


class InstallmentModel(TrackedBase):
    """One scheduled payment of a reservation."""

    __tablename__ = "leasing_installments"

    __table_args__ = (
        UniqueConstraint("reservation_id", "sequence", name="uq_installment_sequence"),
        Index("idx_installment_reservation", "reservation_id"),
        Index("idx_installment_status", "status"),
        Index("idx_installment_due_date", "due_date"),
    )

    reservation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_reservations.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from leasing_modules.installment.models import Installment, InstallmentStatus

        return Installment(
            id=self.id,
            reservation_id=self.reservation_id,
            sequence=self.sequence,
            amount=self.amount,
            due_date=self.due_date,
            status=InstallmentStatus(self.status),
            paid_date=self.paid_date,
            notes=self.notes,
        )

    @classmethod
    def from_scheduled(cls, line, reservation_id: UUID, created_by_id: UUID) -> "InstallmentModel":
        return cls(
            reservation_id=reservation_id,
            sequence=line.sequence,
            amount=line.amount,
            due_date=line.due_date,
            status="pending",
            notes=line.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<InstallmentModel {self.reservation_id}#{self.sequence} ({self.status})>"
