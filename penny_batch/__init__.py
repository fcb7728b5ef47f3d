"""
penny_batch -- scheduling and dispatch for the penny tracker.

Provides a cron-driven in-process scheduler that fires registered tasks,
a worker-pool dispatcher with bounded retries and per-user throttling,
and a persisted run ledger (including dead letters).

Architecture:
    penny_batch/ is a top-level package.  Nothing in penny_kernel/
    imports from penny_batch; tasks call kernel selectors and services.

Guarantees:
    - Clock injection (no datetime.now() calls outside SystemClock)
    - Schedule evaluation is pure
    - Every job ends in exactly one recorded outcome
    - Graceful shutdown between jobs
"""
