"""Read-only query selectors."""

from penny_kernel.selectors.base import BaseSelector
from penny_kernel.selectors.recurring_selector import RecurringSelector

__all__ = ["BaseSelector", "RecurringSelector"]
