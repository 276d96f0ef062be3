"""
Expiry of abandoned payment initiations.

A payer who closes the gateway page never triggers a callback, so the
transaction would stay ``initiated`` forever. The reconciler fails such
transactions after ``payment_expiry_hours``. It uses the same conditional
update as the callback handler, so whichever of the two reaches a row first
settles it and the other becomes a no-op.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.timeutils import ensure_utc, utcnow
from app.models.payment import PaymentStatus, PaymentTransaction

logger = structlog.get_logger(__name__)

EXPIRED_GATEWAY_STATUS = "expired"


class PaymentReconciler:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def expire_abandoned(self, now: datetime | None = None, max_age_hours: int | None = None) -> int:
        """Fail every initiated transaction older than the cutoff; return how many."""
        now = ensure_utc(now) or utcnow()
        hours = max_age_hours if max_age_hours is not None else self.settings.payment_expiry_hours
        cutoff = now - timedelta(hours=hours)

        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.status == PaymentStatus.INITIATED.value,
                PaymentTransaction.created_at < cutoff,
            )
            .values(
                status=PaymentStatus.FAILURE.value,
                gateway_status=EXPIRED_GATEWAY_STATUS,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()

        expired = result.rowcount or 0
        logger.info("payments_expired", count=expired, cutoff=cutoff.isoformat(), max_age_hours=hours)
        return expired
