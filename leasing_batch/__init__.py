"""
leasing_batch -- Batch execution and scheduling for the leasing engine.

Runs registered tasks item by item, each item in its own transaction, and
polls cron schedules in-process.  The nightly expiration sweep and the
maintenance-ticket reconciliation job are the two tasks it ships.

Nothing in leasing_kernel or leasing_modules imports from leasing_batch.
"""
