"""Scheduler ORM models.  Importing this package registers the batch tables."""

from penny_batch.models.batch import BatchItemModel, BatchRunModel, JobScheduleModel

__all__ = [
    "BatchItemModel",
    "BatchRunModel",
    "JobScheduleModel",
]
