"""
Module: leasing_modules.ticket.orm
Responsibility:
    Persistence for service tickets and their status history.

Invariants enforced:
    - Ticket history is append-only: rows are never updated or deleted
      (ORM listener), and ``(ticket_id, sequence)`` is unique.
    - A ticket references its reservation; reservations are never deleted,
      so a ticket outlives a cancelled reservation.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasing_kernel.db.base import Base, TrackedBase, UUIDString


class ServiceTicketModel(TrackedBase):
    """A maintenance, financial or administrative ticket."""

    __tablename__ = "leasing_service_tickets"

    __table_args__ = (
        Index("idx_ticket_reservation_type_status", "reservation_id", "ticket_type", "status"),
        Index("idx_ticket_unit", "unit_id"),
    )

    reservation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_reservations.id"),
        nullable=False,
    )
    unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_units.id"),
        nullable=True,
    )
    ticket_type: Mapped[str] = mapped_column(String(20), nullable=False)
    subtype: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    is_expense_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    history: Mapped[list["TicketHistoryModel"]] = relationship(
        "TicketHistoryModel",
        back_populates="ticket",
        order_by="TicketHistoryModel.sequence",
        lazy="selectin",
    )

    def to_dto(self):
        from leasing_modules.ticket.models import ServiceTicket, TicketStatus, TicketType

        return ServiceTicket(
            id=self.id,
            reservation_id=self.reservation_id,
            unit_id=self.unit_id,
            ticket_type=TicketType(self.ticket_type),
            subtype=self.subtype,
            description=self.description,
            status=TicketStatus(self.status),
            is_expense_created=self.is_expense_created,
            opened_by_id=self.created_by_id,
            history=tuple(h.to_dto() for h in self.history),
        )

    def __repr__(self) -> str:
        return f"<ServiceTicketModel {self.id} {self.ticket_type} ({self.status})>"


class TicketHistoryModel(Base):
    """One status record in a ticket's audit trail."""

    __tablename__ = "leasing_ticket_history"

    __table_args__ = (
        UniqueConstraint("ticket_id", "sequence", name="uq_ticket_history_sequence"),
    )

    ticket_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_service_tickets.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)

    ticket: Mapped["ServiceTicketModel"] = relationship(
        "ServiceTicketModel",
        back_populates="history",
    )

    def to_dto(self):
        from leasing_modules.ticket.models import TicketHistoryEntry, TicketStatus

        return TicketHistoryEntry(
            sequence=self.sequence,
            status=TicketStatus(self.status),
            timestamp=self.recorded_at,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
        )
