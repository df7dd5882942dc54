"""
Leasing Modules.

Each module owns one part of the leasing lifecycle and contains:
- Domain models (frozen DTOs and closed status enums)
- Workflows (transition tables)
- ORM models
- A session-bound service that flushes but never commits

Modules:
- installment: Installment Scheduler and installment status
- deposit: Deposit Ledger
- ticket: Service-Ticket State Machine
- unit: Unit Occupancy Controller
- reservation: Reservation Lifecycle Manager
- expense: Expense Attribution
"""
