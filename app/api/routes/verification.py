from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_verification_service, read_upload
from app.core.config import settings
from app.db.session import get_db
from app.schemas.verification import VerifyUserRequest
from app.services.identity import resolve_admin
from app.services.verification import DocumentKind, VerificationService, status_payload

router = APIRouter(tags=["verification"])


@router.post("/upload-id-card")
def upload_id_card(
    userId: str = Form(""),
    idCard: UploadFile | None = File(None),
    service: VerificationService = Depends(get_verification_service),
):
    document = read_upload(idCard, settings.max_image_bytes)
    user = service.upload_document(userId, DocumentKind.ID_CARD, document)
    return {
        "success": True,
        "message": "ID card uploaded successfully.",
        "idCardUrl": user.id_card_url,
        "verificationStatus": user.verification_status,
    }


@router.post("/upload-payment-receipt")
def upload_payment_receipt(
    userId: str = Form(""),
    paymentReceipt: UploadFile | None = File(None),
    service: VerificationService = Depends(get_verification_service),
):
    document = read_upload(paymentReceipt, settings.max_image_bytes)
    user = service.upload_document(userId, DocumentKind.RECEIPT, document)
    return {
        "success": True,
        "message": "Payment receipt uploaded successfully.",
        "paymentReceiptImageUrl": user.payment_receipt_image_url,
        "verificationStatus": user.verification_status,
    }


@router.get("/verification-status/{userId}")
def verification_status(userId: str, service: VerificationService = Depends(get_verification_service)):
    return {"success": True, **status_payload(service.get_status(userId))}


@router.post("/admin/verify-user")
def admin_verify_user(
    body: VerifyUserRequest,
    db: Session = Depends(get_db),
    service: VerificationService = Depends(get_verification_service),
):
    admin = resolve_admin(db, body.admin_id)
    user = service.admin_decision(body.user_id, admin, body.action)
    return {
        "success": True,
        "message": f"User verification {user.verification_status} successfully.",
        "userId": user.uid,
        "verificationStatus": user.verification_status,
    }


@router.get("/admin/verification-list")
def admin_verification_list(
    adminId: str = "",
    db: Session = Depends(get_db),
    service: VerificationService = Depends(get_verification_service),
):
    users = service.admin_list(resolve_admin(db, adminId))
    return {"success": True, "count": len(users), "users": users}
