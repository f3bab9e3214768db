"""
BaseService -- abstract base for services that write.

Services receive a SQLAlchemy ``Session`` from the caller and persist
with ``session.flush()`` only.  The caller (``session_scope()``, a route
handler or a test) owns commit and rollback, so a production write and
the reconciliation it triggers land in the same transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session

from workload_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for write services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
