from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, Unauthorized
from app.models.user import User
from app.models.user_role import ADMIN_ROLE_ID, UserRole

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AdminIdentity:
    """Proof that the caller's admin claim was checked for this request."""

    uid: str


def is_admin(db: Session, uid: str) -> bool:
    stmt = select(UserRole).where(UserRole.user_id == uid, UserRole.role_id == ADMIN_ROLE_ID)
    return db.execute(stmt).first() is not None


def resolve_admin(db: Session, uid: str | None) -> AdminIdentity:
    if not uid or not uid.strip():
        raise Unauthorized("adminId is required.")
    if not is_admin(db, uid):
        logger.warning("admin_check_failed", admin_id=uid)
        raise Unauthorized()
    return AdminIdentity(uid=uid)


def get_user_or_404(db: Session, uid: str | None) -> User:
    if not uid or not uid.strip():
        raise NotFound("User not found.")
    user = db.get(User, uid)
    if user is None:
        raise NotFound("User not found.")
    return user
