from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.timeutils import utcnow
from app.db.base import Base


class VerificationStatus(str, Enum):
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    # identity-provider uid
    uid: Mapped[str] = mapped_column(String(128), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # fee category: student | scholar
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="scholar")
    institution: Mapped[str | None] = mapped_column(String(255), nullable=True)

    id_card_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    payment_receipt_image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.NOT_SUBMITTED.value
    )
    verified_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verification_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_document_upload_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
