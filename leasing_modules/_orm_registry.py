"""
Module ORM Registry (``leasing_modules._orm_registry``).

Imports every ``leasing_modules.*.orm`` module so ``Base.metadata`` holds
all table definitions before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    # fmt: off
    import leasing_modules.unit.orm  # noqa: F401
    import leasing_modules.reservation.orm  # noqa: F401
    import leasing_modules.installment.orm  # noqa: F401
    import leasing_modules.ticket.orm  # noqa: F401
    import leasing_modules.expense.orm  # noqa: F401
    # fmt: on
