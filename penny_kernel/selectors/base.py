"""
Module: penny_kernel.selectors.base
Responsibility: Abstract base for read-only query selectors.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Selectors return DTOs, not ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session
