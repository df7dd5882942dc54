"""
Module: leasing_modules.expense.orm
Responsibility:
    Persistence for expenses attributed to a building and, optionally, a
    unit and the service ticket that caused them.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leasing_kernel.db.base import TrackedBase, UUIDString


class ExpenseModel(TrackedBase):
    __tablename__ = "leasing_expenses"

    __table_args__ = (
        Index("idx_expense_building", "building_id"),
        Index("idx_expense_unit", "unit_id"),
        Index("idx_expense_ticket", "ticket_id"),
    )

    building_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_buildings.id"),
        nullable=False,
    )
    unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_units.id"),
        nullable=True,
    )
    ticket_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_service_tickets.id"),
        nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    expense_type: Mapped[str] = mapped_column(String(50), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    responsible_party: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from leasing_modules.expense.models import Expense, ResponsibleParty

        return Expense(
            id=self.id,
            building_id=self.building_id,
            unit_id=self.unit_id,
            ticket_id=self.ticket_id,
            amount=self.amount,
            expense_type=self.expense_type,
            expense_date=self.expense_date,
            responsible_party=ResponsibleParty(self.responsible_party),
            description=self.description,
        )
