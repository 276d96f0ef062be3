from typing import Annotated
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.api.deps import callback_base_url, get_payment_service, get_reconciler
from app.core.config import settings
from app.core.exceptions import IntegrityFailure
from app.db.session import get_db
from app.models.payment import PaymentStatus
from app.schemas.payment import CreateAttendeePaymentRequest, CreatePaymentRequest, GatewayCallback
from app.schemas.verification import ReconcileRequest
from app.services.identity import resolve_admin
from app.services.payments.reconciliation import PaymentReconciler
from app.services.payments.service import CallbackDisposition, CallbackOutcome, PaymentService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["payments"])


def _result_redirect(frontend_url: str | None, **params: str | None) -> RedirectResponse:
    base = (frontend_url or settings.frontend_url).rstrip("/")
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(f"{base}/payment-result?{query}", status_code=303)


def _settle(payload: GatewayCallback, outcome: CallbackOutcome, service: PaymentService) -> RedirectResponse:
    try:
        result = service.handle_callback(payload.model_dump(), outcome)
    except IntegrityFailure as exc:
        # the gateway still gets an answer; nothing was written
        return _result_redirect(None, status="failed", reason=exc.reason, txnid=exc.txnid)

    if result.disposition is CallbackDisposition.UNKNOWN_TRANSACTION:
        return _result_redirect(None, status="failed", reason="unknown_transaction", txnid=result.txnid)

    kind = "attendee" if result.is_attendee else None
    if result.status == PaymentStatus.SUCCESS.value:
        return _result_redirect(
            result.frontend_url,
            status="success",
            txnid=result.txnid,
            amount=result.amount,
            type=kind,
        )
    return _result_redirect(
        result.frontend_url,
        status="failed",
        txnid=result.txnid,
        reason="payment_failed",
        type=kind,
    )


@router.post("/create-payment")
def create_payment(
    body: CreatePaymentRequest,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    initiation = service.initiate_registration(
        body.uid,
        frontend_url=body.frontend_url,
        callback_base_url=callback_base_url(request),
    )
    return initiation.to_response()


@router.post("/create-attendee-payment")
def create_attendee_payment(
    body: CreateAttendeePaymentRequest,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    initiation = service.initiate_attendee(
        body.name,
        body.email,
        body.phone,
        organization=body.organization,
        frontend_url=body.frontend_url,
        callback_base_url=callback_base_url(request),
    )
    response = initiation.to_response()
    response.pop("paymentRequired", None)
    return response


@router.post("/payment-success")
def payment_success(
    payload: Annotated[GatewayCallback, Form()],
    service: PaymentService = Depends(get_payment_service),
):
    return _settle(payload, CallbackOutcome.SUCCESS, service)


@router.post("/payment-failure")
def payment_failure(
    payload: Annotated[GatewayCallback, Form()],
    service: PaymentService = Depends(get_payment_service),
):
    return _settle(payload, CallbackOutcome.FAILURE, service)


@router.post("/attendee-payment-success")
def attendee_payment_success(
    payload: Annotated[GatewayCallback, Form()],
    service: PaymentService = Depends(get_payment_service),
):
    return _settle(payload, CallbackOutcome.SUCCESS, service)


@router.post("/attendee-payment-failure")
def attendee_payment_failure(
    payload: Annotated[GatewayCallback, Form()],
    service: PaymentService = Depends(get_payment_service),
):
    return _settle(payload, CallbackOutcome.FAILURE, service)


@router.get("/payment-status/{uid}")
def payment_status(uid: str, service: PaymentService = Depends(get_payment_service)):
    return service.status(uid)


@router.get("/attendee-status/{email}")
def attendee_status(email: str, service: PaymentService = Depends(get_payment_service)):
    return service.attendee_status(email)


@router.get("/transaction-status/{txnid}")
def transaction_status(txnid: str, service: PaymentService = Depends(get_payment_service)):
    return service.transaction_status(txnid)


@router.post("/admin/reconcile-payments")
def reconcile_payments(
    body: ReconcileRequest,
    db: Session = Depends(get_db),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    admin = resolve_admin(db, body.admin_id)
    expired = reconciler.expire_abandoned(max_age_hours=body.max_age_hours)
    logger.info("reconciliation_requested", admin_id=admin.uid, expired=expired)
    return {"success": True, "expired": expired}
