from functools import lru_cache

from fastapi import Depends, Request, UploadFile
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db, get_session_factory
from app.services.payments.gateway import EasebuzzClient
from app.services.payments.reconciliation import PaymentReconciler
from app.services.payments.service import FeeWaiver, PaymentService, institution_waiver
from app.services.receipts import ReceiptService
from app.services.reference_allocator import ReferenceAllocator
from app.services.storage import ObjectStorage
from app.services.submissions import SubmissionService
from app.services.uploads import UploadedFile
from app.services.verification import VerificationService


@lru_cache()
def get_storage() -> ObjectStorage:
    return ObjectStorage(settings)


@lru_cache()
def get_gateway_client() -> EasebuzzClient:
    return EasebuzzClient(settings)


def get_fee_waiver() -> FeeWaiver:
    return institution_waiver(settings)


def get_reference_allocator() -> ReferenceAllocator:
    return ReferenceAllocator(get_session_factory(), settings)


def get_submission_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    allocator: ReferenceAllocator = Depends(get_reference_allocator),
) -> SubmissionService:
    return SubmissionService(db, storage, allocator, settings)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: EasebuzzClient = Depends(get_gateway_client),
    fee_waiver: FeeWaiver = Depends(get_fee_waiver),
) -> PaymentService:
    return PaymentService(db, gateway, settings, fee_waiver)


def get_receipt_service(
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> ReceiptService:
    return ReceiptService(db, payments, settings)


def get_verification_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    fee_waiver: FeeWaiver = Depends(get_fee_waiver),
) -> VerificationService:
    return VerificationService(db, storage, settings, fee_waiver)


def get_reconciler(db: Session = Depends(get_db)) -> PaymentReconciler:
    return PaymentReconciler(db, settings)


def read_upload(upload: UploadFile | None, limit: int) -> UploadedFile | None:
    """Read at most one byte past ``limit``; enough for the size check to reject it."""
    if upload is None:
        return None
    return UploadedFile(
        filename=upload.filename or "",
        content_type=upload.content_type or "application/octet-stream",
        data=upload.file.read(limit + 1),
    )


def callback_base_url(request: Request) -> str:
    """Public base URL the gateway posts callbacks to."""
    return settings.backend_url or str(request.base_url).rstrip("/")
