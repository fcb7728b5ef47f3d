"""Default OccurrenceNotifier: emits committed results as structured log lines."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from penny_kernel.domain.dtos import BudgetAlert, MaterializedOccurrence
from penny_kernel.logging_config import get_logger

logger = get_logger("notifications")


class LoggingNotifier:
    def occurrences_materialized(
        self, user_id: UUID, occurrences: Sequence[MaterializedOccurrence],
    ) -> None:
        if not occurrences:
            return
        logger.info(
            "occurrences_materialized",
            extra={
                "user_id": str(user_id),
                "template_id": str(occurrences[0].template_id),
                "count": len(occurrences),
                "dates": [o.date for o in occurrences],
            },
        )

    def budget_alert(self, alert: BudgetAlert) -> None:
        logger.info(
            "budget_alert",
            extra={
                "user_id": str(alert.user_id),
                "budget_id": str(alert.budget_id),
                "account_name": alert.account_name,
                "percentage_used": alert.percentage_used,
                "budget_amount": alert.budget_amount,
                "total_expenses": alert.total_expenses,
            },
        )
