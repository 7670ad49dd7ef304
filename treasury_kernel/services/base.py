"""
BaseService -- abstract base for stateful treasury services.

Responsibility:
    Common constructor and session-handling contract for every service
    that writes.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  Extended by kernel services and by the
    orchestration services in ``treasury_services``.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back.  The workflow facade
      (or a test) owns commit/rollback, so a decided step and the request
      status derived from it land together or not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for stateful services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``treasury_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
