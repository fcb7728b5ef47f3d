"""Scheduler services: dispatch, throttling, the run ledger and the driver."""

from penny_batch.services.dispatcher import JobDispatcher, round_robin
from penny_batch.services.run_recorder import RunRecorder
from penny_batch.services.scheduler import BatchScheduler
from penny_batch.services.throttle import PerKeyThrottle

__all__ = [
    "BatchScheduler",
    "JobDispatcher",
    "PerKeyThrottle",
    "RunRecorder",
    "round_robin",
]
