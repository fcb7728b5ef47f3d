"""
ORM models for the scheduler's run ledger.

Contract:
    BatchRunModel (one row per fired task), BatchItemModel (one row per
    dispatched job, including dead letters) and JobScheduleModel (cron-
    driven task schedules).  JobScheduleModel converts to and from its DTO.

Architecture: penny_batch/models.  Imports from penny_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from penny_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from penny_batch.domain.types import JobSchedule


class BatchRunModel(TrackedBase):
    """One execution of a scheduled or manually triggered task."""

    __tablename__ = "batch_runs"

    __table_args__ = (
        Index("ix_batch_runs_task_type", "task_type"),
        Index("ix_batch_runs_started_at", "started_at"),
    )

    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger: Mapped[str] = mapped_column(String(20), nullable=False)
    schedule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("job_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )
    total_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    noop_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dead_lettered_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fatal_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    as_of: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["BatchItemModel"]] = relationship(
        "BatchItemModel",
        back_populates="run",
        order_by="BatchItemModel.item_index",
    )


class BatchItemModel(TrackedBase):
    """Final outcome of one dispatched job."""

    __tablename__ = "batch_items"

    __table_args__ = (
        Index("ix_batch_items_run_status", "run_id", "status"),
        Index("ix_batch_items_status", "status"),
        Index("ix_batch_items_subject", "subject_id"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    run: Mapped["BatchRunModel"] = relationship(
        "BatchRunModel",
        back_populates="items",
    )


class JobScheduleModel(TrackedBase):
    """Cron-driven schedule for one registered task type."""

    __tablename__ = "job_schedules"

    __table_args__ = (
        Index("ix_job_schedules_active", "is_active"),
        Index("ix_job_schedules_next_run", "next_run_at"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    cron_expression: Mapped[str | None] = mapped_column(String(100), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_run_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> JobSchedule:
        from penny_batch.domain.types import (
            BatchRunStatus,
            JobSchedule,
            ScheduleFrequency,
        )

        return JobSchedule(
            schedule_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            frequency=ScheduleFrequency(self.frequency),
            cron_expression=self.cron_expression,
            next_run_at=self.next_run_at,
            last_run_at=self.last_run_at,
            last_run_status=(
                BatchRunStatus(self.last_run_status)
                if self.last_run_status
                else None
            ),
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: JobSchedule) -> JobScheduleModel:
        return cls(
            id=dto.schedule_id,
            job_name=dto.job_name,
            task_type=dto.task_type,
            frequency=dto.frequency.value,
            cron_expression=dto.cron_expression,
            next_run_at=dto.next_run_at,
            last_run_at=dto.last_run_at,
            last_run_status=(
                dto.last_run_status.value if dto.last_run_status else None
            ),
            is_active=dto.is_active,
        )
