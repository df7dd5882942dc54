"""Expense Domain Models (``leasing_modules.expense.models``)."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ResponsibleParty(Enum):
    OWNER = "owner"
    TENANT = "tenant"


@dataclass(frozen=True)
class Expense:
    id: UUID
    building_id: UUID
    amount: Decimal
    expense_type: str
    expense_date: date
    responsible_party: ResponsibleParty
    unit_id: UUID | None = None
    ticket_id: UUID | None = None
    description: str | None = None
