from __future__ import annotations

import structlog
from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.core.config import Settings
from app.core.exceptions import StoreTransientError
from app.models.counter import SUBMISSION_REF_COUNTER, Counter

logger = structlog.get_logger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_PG_CONFLICT_CODES = {"40001", "40P01", "55P03"}


def is_transaction_conflict(exc: BaseException) -> bool:
    if isinstance(exc, IntegrityError):
        # two callers racing to create the counter row
        return True
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    if getattr(orig, "pgcode", None) in _PG_CONFLICT_CODES:
        return True
    if getattr(orig, "sqlstate", None) in _PG_CONFLICT_CODES:
        return True
    return "database is locked" in str(orig).lower()


def format_reference(prefix: str, number: int) -> str:
    return f"{prefix}-{number:02d}"


class ReferenceAllocator:
    """Hands out PREFIX-NN reference numbers from a shared counter row.

    Each allocation runs in its own transaction, independent of the caller's
    session, so an issued number stays consumed even if the submission it was
    meant for is never written.
    """

    def __init__(self, session_factory: sessionmaker[Session], settings: Settings):
        self._session_factory = session_factory
        self._prefix = settings.reference_prefix
        self._attempts = max(1, settings.reference_allocation_attempts)

    def allocate_next(self, prefix: str | None = None) -> str:
        retrying = Retrying(
            retry=retry_if_exception(is_transaction_conflict),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=0.02, max=0.5),
            reraise=True,
        )
        try:
            number = retrying(self._increment)
        except DBAPIError as exc:
            if is_transaction_conflict(exc):
                logger.error("reference_allocation_exhausted", attempts=self._attempts, error=str(exc))
                raise StoreTransientError("Could not allocate a reference number. Please retry.") from exc
            raise

        reference = format_reference(prefix or self._prefix, number)
        logger.info("reference_allocated", reference_number=reference)
        return reference

    def _increment(self) -> int:
        with self._session_factory() as session:
            with session.begin():
                # the UPDATE takes the row lock, so concurrent callers queue in the database
                stmt = (
                    update(Counter)
                    .where(Counter.name == SUBMISSION_REF_COUNTER)
                    .values(last_number=Counter.last_number + 1)
                    .returning(Counter.last_number)
                )
                number = session.execute(stmt).scalar_one_or_none()
                if number is None:
                    session.add(Counter(name=SUBMISSION_REF_COUNTER, last_number=1))
                    number = 1
            return number
