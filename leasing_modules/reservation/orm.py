"""
Module: leasing_modules.reservation.orm
Responsibility:
    Persistence for reservations, including the deposit fields owned by the
    Deposit Ledger.

Invariants enforced:
    - ``status`` is one of active, expired, cancelled; reservations are
      never physically deleted (ORM listener).
    - ``(unit_id, status)`` is indexed for the overlap check and the sweep
      query.  Non-overlap of active reservations is enforced by the
      lifecycle service under a per-unit lock, not by a constraint.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from leasing_kernel.db.base import TrackedBase, UUIDString


class ReservationModel(TrackedBase):
    """A tenant's reservation of a unit over ``[start_date, end_date]``."""

    __tablename__ = "leasing_reservations"

    __table_args__ = (
        Index("idx_reservation_unit_status", "unit_id", "status"),
        Index("idx_reservation_status_end", "status", "end_date"),
        Index("idx_reservation_tenant", "tenant_id"),
    )

    unit_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_units.id"),
        nullable=False,
    )
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    payment_frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    # Rate captured at booking time; later unit repricing does not touch it.
    monthly_rate: Mapped[Decimal] = mapped_column(nullable=False)

    includes_deposit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    deposit_payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deposit_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deposit_paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    deposit_returned_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    expired_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    cancelled_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    def deposit_state(self):
        from leasing_modules.deposit.models import DepositState, DepositStatus

        if not self.includes_deposit:
            return None
        return DepositState(
            status=DepositStatus(self.deposit_status or "unpaid"),
            paid_date=self.deposit_paid_date,
            returned_date=self.deposit_returned_date,
        )

    def apply_deposit_state(self, state) -> None:
        self.deposit_status = state.status.value
        self.deposit_paid_date = state.paid_date
        self.deposit_returned_date = state.returned_date

    def to_dto(self):
        from leasing_modules.deposit.models import PaymentMethod
        from leasing_modules.installment.models import PaymentFrequency
        from leasing_modules.reservation.models import Reservation, ReservationStatus

        return Reservation(
            id=self.id,
            unit_id=self.unit_id,
            tenant_id=self.tenant_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=ReservationStatus(self.status),
            payment_frequency=PaymentFrequency(self.payment_frequency),
            monthly_rate=self.monthly_rate,
            includes_deposit=self.includes_deposit,
            deposit_amount=self.deposit_amount,
            deposit_payment_method=(
                PaymentMethod(self.deposit_payment_method)
                if self.deposit_payment_method
                else None
            ),
            deposit=self.deposit_state(),
            expired_on=self.expired_on,
            cancelled_on=self.cancelled_on,
        )

    def __repr__(self) -> str:
        return (
            f"<ReservationModel {self.id} unit={self.unit_id} "
            f"{self.start_date}..{self.end_date} ({self.status})>"
        )
