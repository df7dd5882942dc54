"""Installment status changes and the deposit ledger on persisted reservations."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from leasing_kernel.exceptions import (
    DepositNotIncludedError,
    DepositTransitionError,
    InstallmentNotFoundError,
    InstallmentTransitionError,
    UnknownEnumValueError,
)
from leasing_modules.deposit.models import DepositInfo, DepositStatus, PaymentMethod


def _deposit(amount="500.00", method=PaymentMethod.CASH):
    return DepositInfo(Decimal(amount), method)


class TestInstallments:

    def test_mark_paid_defaults_to_today(self, leasing, manager, reserve):
        first = reserve().installments[0]
        paid = leasing.mark_installment_paid(first.id, manager)
        assert paid.paid_date == date(2024, 1, 1)

    def test_delayed_then_paid(self, leasing, manager, reserve):
        first = reserve().installments[0]
        leasing.mark_installment_delayed(first.id, manager)
        paid = leasing.mark_installment_paid(first.id, manager, paid_date=date(2024, 1, 15))
        assert paid.paid_date == date(2024, 1, 15)

    def test_paid_is_final(self, leasing, manager, reserve):
        first = reserve().installments[0]
        leasing.mark_installment_paid(first.id, manager)
        with pytest.raises(InstallmentTransitionError, match="settled"):
            leasing.mark_installment_delayed(first.id, manager)

    def test_delayed_counts_as_outstanding(self, leasing, manager, reserve):
        created = reserve(date(2024, 1, 1), date(2024, 3, 1))
        leasing.mark_installment_delayed(created.installments[0].id, manager)
        balance = leasing.outstanding_balance(created.reservation.id)
        assert balance.installments_total == Decimal("2000.00")

    def test_unknown_installment(self, leasing, manager):
        with pytest.raises(InstallmentNotFoundError):
            leasing.mark_installment_paid(uuid4(), manager)


class TestDepositStatus:

    def test_collect_and_return(self, leasing, manager, reserve):
        created = reserve(deposit=_deposit())
        rid = created.reservation.id

        paid = leasing.update_deposit_status(rid, "paid", manager, on_date=date(2024, 1, 2))
        assert paid.deposit.status == DepositStatus.PAID
        assert paid.deposit.paid_date == date(2024, 1, 2)

        returned = leasing.update_deposit_status(rid, DepositStatus.RETURNED, manager)
        assert returned.deposit.status == DepositStatus.RETURNED
        assert returned.deposit.returned_date == date(2024, 1, 1)

    def test_return_uncollected(self, leasing, manager, reserve):
        created = reserve(deposit=_deposit())
        with pytest.raises(DepositTransitionError):
            leasing.update_deposit_status(created.reservation.id, "returned", manager)

    def test_reservation_without_deposit(self, leasing, manager, reserve):
        created = reserve()
        with pytest.raises(DepositNotIncludedError):
            leasing.update_deposit_status(created.reservation.id, "paid", manager)

    def test_unknown_status(self, leasing, manager, reserve):
        created = reserve(deposit=_deposit())
        with pytest.raises(UnknownEnumValueError):
            leasing.update_deposit_status(created.reservation.id, "refunded", manager)


class TestDepositReporting:

    def test_statistics(self, leasing, make_unit, manager, reserve):
        a = reserve(unit_id=make_unit().id, deposit=_deposit("500.00"))
        reserve(unit_id=make_unit().id, deposit=_deposit("300.00", PaymentMethod.CHECK))
        reserve(unit_id=make_unit().id)
        leasing.update_deposit_status(a.reservation.id, "paid", manager)

        stats = leasing.deposit_statistics()
        assert stats.by_status[DepositStatus.PAID].count == 1
        assert stats.by_status[DepositStatus.PAID].total_amount == Decimal("500.00")
        assert stats.by_status[DepositStatus.UNPAID].count == 1
        assert stats.by_status[DepositStatus.RETURNED].count == 0
        assert stats.total_count == 2
        assert stats.total_amount == Decimal("800.00")

    def test_to_return_lists_ended_reservations(self, leasing, make_unit, manager, reserve):
        ended = reserve(unit_id=make_unit().id, deposit=_deposit())
        running = reserve(unit_id=make_unit().id, deposit=_deposit())
        for created in (ended, running):
            leasing.update_deposit_status(created.reservation.id, "paid", manager)
        leasing.cancel_reservation(ended.reservation.id, manager)

        pending = leasing.deposits_to_return()
        assert [d.reservation_id for d in pending] == [ended.reservation.id]
        assert pending[0].amount == Decimal("500.00")
        assert pending[0].reservation_status == "cancelled"

    def test_returned_deposit_not_listed(self, leasing, manager, reserve):
        created = reserve(deposit=_deposit())
        rid = created.reservation.id
        leasing.update_deposit_status(rid, "paid", manager)
        leasing.expire_reservation(rid, manager)
        leasing.update_deposit_status(rid, "returned", manager)
        assert leasing.deposits_to_return() == []
