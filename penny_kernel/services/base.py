"""
BaseService -- abstract base for session-backed kernel services.

Invariants enforced:
    Services flush within the caller's transaction and never commit or roll
    back themselves.  The caller (a unit of work, a batch task, or a test)
    owns the boundary, which is what makes multi-step writes atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    def __init__(self, session: Session):
        self.session = session
