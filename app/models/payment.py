from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.timeutils import utcnow
from app.db.base import Base


class PaymentStatus(str, Enum):
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILURE = "failure"


class PaymentType(str, Enum):
    REGISTRATION_FEE = "registration_fee"
    ATTENDEE_REGISTRATION = "attendee_registration"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    txnid: Mapped[str] = mapped_column(String(64), primary_key=True)

    # registered payer; attendees pay as guests and only carry contact fields
    uid: Mapped[str | None] = mapped_column(
        String(128),
        ForeignKey("users.uid", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    submission_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("submissions.id", ondelete="SET NULL"),
        nullable=True,
    )

    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    product_info: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payment_type: Mapped[str] = mapped_column(String(40), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.INITIATED.value)
    gateway_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    frontend_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def amount_str(self) -> str:
        return f"{self.amount:.2f}"

    @property
    def is_attendee(self) -> bool:
        return self.payment_type == PaymentType.ATTENDEE_REGISTRATION.value
