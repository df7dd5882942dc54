"""
Expense Module (``leasing_modules.expense``).

Expense attribution: ties costs to a building, unit and service ticket
and records who is responsible for paying them.
"""

from leasing_modules.expense.models import Expense, ResponsibleParty

__all__ = ["Expense", "ResponsibleParty"]
