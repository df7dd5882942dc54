"""
Shared value objects: acting identity, money rounding and enum parsing.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TypeVar
from uuid import UUID

from leasing_kernel.exceptions import InvalidAmountError, UnknownEnumValueError

E = TypeVar("E", bound=Enum)

CENT = Decimal("0.01")

# Fixed identity recorded on history entries written by background jobs.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


class ActorRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    ACCOUNTANT = "accountant"
    MAINTENANCE = "maintenance"
    TENANT = "tenant"
    SYSTEM = "system"


STAFF_ROLES = frozenset({
    ActorRole.ADMIN,
    ActorRole.MANAGER,
    ActorRole.ACCOUNTANT,
    ActorRole.MAINTENANCE,
    ActorRole.SYSTEM,
})


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation (id + role)."""

    id: UUID
    role: ActorRole

    @classmethod
    def system(cls) -> Actor:
        return cls(id=SYSTEM_ACTOR_ID, role=ActorRole.SYSTEM)

    @property
    def is_tenant(self) -> bool:
        return self.role == ActorRole.TENANT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def round_money(amount: Decimal) -> Decimal:
    """Quantize to cents, half-up."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(field: str, amount: Decimal | None) -> Decimal:
    """Return ``amount`` as a Decimal, raising InvalidAmountError unless > 0."""
    if amount is None:
        raise InvalidAmountError(field, amount)
    value = Decimal(str(amount))
    if value <= 0:
        raise InvalidAmountError(field, amount)
    return value


def require_positive_money(field: str, amount: Decimal | None) -> Decimal:
    """Round ``amount`` to cents; the rounded value must be > 0."""
    value = round_money(require_positive(field, amount))
    if value <= 0:
        raise InvalidAmountError(field, amount)
    return value


def parse_enum(enum_cls: type[E], raw: E | str, field: str) -> E:
    """Coerce ``raw`` into ``enum_cls`` or raise UnknownEnumValueError."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        raise UnknownEnumValueError(
            field, raw, tuple(str(m.value) for m in enum_cls)
        ) from None
