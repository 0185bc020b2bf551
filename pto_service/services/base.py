"""
Service layer base: session ownership, unit-of-work and conflict retries.

Every balance- or request-mutating operation runs as one committed unit of
work. Rows that can race (balances, requests) carry a SQLAlchemy
`version_id_col`; a concurrent writer surfaces as StaleDataError at flush,
the unit is rolled back and the whole operation is replayed.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from pto_service.core.config import settings
from pto_service.core.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.pto.timezone)


@contextmanager
def unit_of_work(db: Session):
    """Commit on success, roll back on any failure so no partial mutation survives."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def run_atomic(db: Session, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run `operation` inside one unit of work, replaying it when an
    optimistic-lock conflict is detected.
    """
    retrying = Retrying(
        stop=stop_after_attempt(settings.pto.lock_retry_attempts),
        wait=wait_exponential(multiplier=settings.pto.lock_retry_backoff, max=1),
        retry=retry_if_exception_type(StaleDataError),
        reraise=True,
        before_sleep=lambda state: logger.warning(
            f"Concurrent modification in {getattr(operation, '__name__', 'operation')}, "
            f"retrying (attempt {state.attempt_number})"
        ),
    )
    try:
        for attempt in retrying:
            with attempt:
                with unit_of_work(db):
                    return operation(*args, **kwargs)
    except StaleDataError as e:
        logger.error(f"Giving up after {settings.pto.lock_retry_attempts} conflicting attempts: {e}")
        raise ConcurrencyConflict() from e


class BaseService:
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock: Clock = clock or utc_now
        self._logger = logging.getLogger(self.__class__.__module__)

    def now(self) -> datetime:
        return self.clock()

    def today(self):
        return self.now().astimezone(local_tz()).date()

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)
