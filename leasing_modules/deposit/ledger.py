"""
Deposit Ledger -- pure state machine for one reservation's deposit.

    unpaid --mark_paid--> paid --mark_returned--> returned
       ^                   |                        |
       +----mark_unpaid----+------------------------+

``mark_paid`` requires ``unpaid`` and clears any returned date.
``mark_returned`` requires ``paid``; returning a deposit that was never
collected is a ``DepositTransitionError``.  ``mark_unpaid`` resets both
dates from any state.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

from leasing_kernel.domain.values import parse_enum, require_positive_money, round_money
from leasing_kernel.domain.workflow import Guard, Transition, Workflow
from leasing_kernel.exceptions import DepositTransitionError, InvalidDepositError
from leasing_modules.deposit.models import (
    DepositInfo,
    DepositState,
    DepositStatus,
    PaymentMethod,
)

DEPOSIT_COLLECTED = Guard("deposit_collected", "Deposit was paid before it can be returned")

DEPOSIT_WORKFLOW = Workflow(
    name="deposit_lifecycle",
    description="Security deposit collection and refund",
    initial_state="unpaid",
    states=("unpaid", "paid", "returned"),
    transitions=(
        Transition("unpaid", "paid", action="mark_paid"),
        Transition("paid", "returned", action="mark_returned", guard=DEPOSIT_COLLECTED),
        Transition("paid", "unpaid", action="mark_unpaid"),
        Transition("returned", "unpaid", action="mark_unpaid"),
    ),
)


def _require(state: DepositState, target: DepositStatus, entity_id: str) -> None:
    if DEPOSIT_WORKFLOW.find(state.status.value, target.value) is None:
        raise DepositTransitionError(entity_id, state.status.value, target.value)


def mark_paid(state: DepositState, paid_on: date, entity_id: str = "") -> DepositState:
    _require(state, DepositStatus.PAID, entity_id)
    return replace(state, status=DepositStatus.PAID, paid_date=paid_on, returned_date=None)


def mark_returned(state: DepositState, returned_on: date, entity_id: str = "") -> DepositState:
    if state.status != DepositStatus.PAID:
        raise DepositTransitionError(
            entity_id,
            state.status.value,
            DepositStatus.RETURNED.value,
            "deposit was never collected" if state.status == DepositStatus.UNPAID else "",
        )
    return replace(state, status=DepositStatus.RETURNED, returned_date=returned_on)


def mark_unpaid(state: DepositState) -> DepositState:
    return DepositState(status=DepositStatus.UNPAID, paid_date=None, returned_date=None)


def apply(
    state: DepositState,
    target: DepositStatus,
    on_date: date,
    entity_id: str = "",
) -> DepositState:
    """Dispatch to the transition that reaches ``target``."""
    if target == DepositStatus.PAID:
        return mark_paid(state, on_date, entity_id)
    if target == DepositStatus.RETURNED:
        return mark_returned(state, on_date, entity_id)
    return mark_unpaid(state)


def parse_terms(info: DepositInfo) -> DepositInfo:
    """
    Return ``info`` with its payment method and status coerced to enums.

    Raises:
        InvalidDepositError: no payment method.
        UnknownEnumValueError: payment method or status is not a known value.
    """
    if info.payment_method is None or info.payment_method == "":
        raise InvalidDepositError("payment method is required")
    return replace(
        info,
        payment_method=parse_enum(PaymentMethod, info.payment_method, "deposit_payment_method"),
        status=parse_enum(DepositStatus, info.status, "deposit_status"),
    )


def initial_state(info: DepositInfo) -> DepositState:
    """
    Validate deposit terms and derive the starting state.

    Raises:
        InvalidAmountError: amount is missing or not positive.
        InvalidDepositError: missing payment method, ``paid`` without a
            paid date, or an initial ``returned`` status.
        UnknownEnumValueError: unknown payment method or status.
    """
    require_positive_money("deposit_amount", info.amount)
    info = parse_terms(info)
    if info.status == DepositStatus.RETURNED:
        raise InvalidDepositError("a new deposit cannot start as returned")
    if info.status == DepositStatus.PAID:
        if info.paid_date is None:
            raise InvalidDepositError("paid date is required when the deposit is paid")
        return DepositState(status=DepositStatus.PAID, paid_date=info.paid_date)
    return DepositState()


def deposit_amount(info: DepositInfo) -> Decimal:
    return round_money(Decimal(str(info.amount)))
