from __future__ import annotations

import time
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import ReuploadNotAllowed, ValidationError
from app.core.timeutils import isoformat, utcnow
from app.models.user import User, VerificationStatus
from app.services.identity import AdminIdentity, get_user_or_404
from app.services.payments.service import FeeWaiver, institution_waiver
from app.services.storage import ObjectStorage
from app.services.uploads import UploadedFile, check_image

logger = structlog.get_logger(__name__)


class DocumentKind(str, Enum):
    ID_CARD = "id_card"
    RECEIPT = "receipt"


_FOLDERS = {
    DocumentKind.ID_CARD: "conference/id-cards",
    DocumentKind.RECEIPT: "conference/payment-receipts",
}
_LIST_ORDER = {
    VerificationStatus.PENDING.value: 0,
    VerificationStatus.REJECTED.value: 1,
    VerificationStatus.APPROVED.value: 2,
}
DECISIONS = {VerificationStatus.APPROVED.value, VerificationStatus.REJECTED.value}


def status_payload(user: User) -> dict[str, Any]:
    return {
        "userId": user.uid,
        "idCardUrl": user.id_card_url,
        "paymentReceiptImageUrl": user.payment_receipt_image_url,
        "verificationStatus": user.verification_status or VerificationStatus.NOT_SUBMITTED.value,
        "verificationDate": isoformat(user.verification_date),
        "verifiedBy": user.verified_by,
    }


class VerificationService:
    def __init__(
        self,
        db: Session,
        storage: ObjectStorage,
        settings: Settings,
        fee_waiver: FeeWaiver | None = None,
    ):
        self.db = db
        self.storage = storage
        self.settings = settings
        self.fee_waiver = fee_waiver or institution_waiver(settings)

    def upload_document(self, user_id: str, kind: DocumentKind, file: UploadedFile | None) -> User:
        if not user_id or not user_id.strip():
            raise ValidationError("userId is required.")
        check_image(file, self.settings.max_image_bytes)

        user = get_user_or_404(self.db, user_id)
        if user.verification_status == VerificationStatus.APPROVED.value:
            raise ReuploadNotAllowed()

        key = f"{_FOLDERS[kind]}/{user_id}_{time.time_ns() // 1_000_000}{file.extension}"
        url = self.storage.upload_bytes(file.data, key, file.content_type)

        if kind is DocumentKind.ID_CARD:
            user.id_card_url = url
        else:
            user.payment_receipt_image_url = url
        if user.verification_status in (VerificationStatus.NOT_SUBMITTED.value, VerificationStatus.REJECTED.value):
            user.verification_status = VerificationStatus.PENDING.value
        user.last_document_upload_at = utcnow()
        self.db.commit()

        logger.info("verification_document_uploaded", user_id=user_id, kind=kind.value)
        return user

    def get_status(self, user_id: str) -> User:
        return get_user_or_404(self.db, user_id)

    def admin_decision(self, user_id: str, admin: AdminIdentity, action: str) -> User:
        action = (action or "").strip().lower()
        if action not in DECISIONS:
            raise ValidationError("action must be 'approved' or 'rejected'.")

        user = get_user_or_404(self.db, user_id)
        user.verification_status = action
        user.verified_by = admin.uid
        user.verification_date = utcnow()
        self.db.commit()

        logger.info("verification_decided", user_id=user_id, admin_id=admin.uid, action=action)
        return user

    def admin_list(self, admin: AdminIdentity) -> list[dict[str, Any]]:
        stmt = select(User).where(User.verification_status.in_(list(_LIST_ORDER)))
        users = sorted(
            self.db.execute(stmt).scalars(),
            key=lambda u: (_LIST_ORDER[u.verification_status], u.uid),
        )

        rows = []
        for user in users:
            reason = self.fee_waiver(user)
            rows.append({
                **status_payload(user),
                "name": user.name or "",
                "email": user.email or "",
                "phone": user.phone or "",
                "role": user.role or "",
                "institution": user.institution or "",
                "lastDocumentUploadAt": isoformat(user.last_document_upload_at),
                "paymentExempted": reason is not None,
                "exemptionReason": reason,
            })
        logger.info("verification_list_viewed", admin_id=admin.uid, count=len(rows))
        return rows
