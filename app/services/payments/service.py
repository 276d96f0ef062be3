from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import AlreadyPaid, IntegrityFailure, NotFound, PrecursorMissing, ValidationError
from app.core.timeutils import isoformat, utcnow
from app.models.payment import PaymentStatus, PaymentTransaction, PaymentType
from app.models.submission import Submission, SubmissionStatus, SubmissionType
from app.models.user import User
from app.services.identity import get_user_or_404
from app.services.payments.gateway import EasebuzzClient
from app.services.payments.hashing import forward_hash, new_txn_id, verify_reverse_hash

logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PAYABLE_PAPER_STATUSES = (
    SubmissionStatus.ACCEPTED.value,
    SubmissionStatus.ACCEPTED_WITH_REVISION.value,
)
ATTENDEE_PRODUCT_INFO = "Attendee Registration Fee"
DEFAULT_FIRST_NAME = "User"
DEFAULT_PHONE = "9999999999"

# returns a waiver reason, or None when the user has to pay
FeeWaiver = Callable[[User], str | None]


def institution_waiver(settings: Settings) -> FeeWaiver:
    institutions = set(settings.fee_waiver_institutions)
    reason = settings.fee_waiver_reason

    def waiver(user: User) -> str | None:
        institution = (user.institution or "").strip().lower()
        return reason if institution and institution in institutions else None

    return waiver


class CallbackOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class CallbackDisposition(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNKNOWN_TRANSACTION = "unknown_transaction"


@dataclass
class PaymentInitiation:
    payment_required: bool
    txnid: str | None = None
    amount: str | None = None
    role: str | None = None
    payment_url: str | None = None
    access_key: str | None = None
    reason: str | None = None

    def to_response(self) -> dict[str, Any]:
        if not self.payment_required:
            return {"success": True, "paymentRequired": False, "reason": self.reason}
        body = {
            "success": True,
            "paymentRequired": True,
            "paymentUrl": self.payment_url,
            "accessKey": self.access_key,
            "txnid": self.txnid,
            "amount": self.amount,
        }
        if self.role is not None:
            body["role"] = self.role
        return body


@dataclass
class CallbackResult:
    disposition: CallbackDisposition
    txnid: str | None
    status: str | None = None
    amount: str | None = None
    is_attendee: bool = False
    frontend_url: str | None = None


def role_label(role: str) -> str:
    return "Student" if role == "student" else "Scholar"


def normalize_role(role: str | None) -> str:
    role = (role or "").strip().lower()
    return role if role in ("student", "scholar") else "scholar"


def _normalize_amount(value: str) -> str | None:
    try:
        return f"{Decimal(value.strip()):.2f}"
    except (InvalidOperation, AttributeError):
        return None


class PaymentService:
    def __init__(
        self,
        db: Session,
        gateway: EasebuzzClient,
        settings: Settings,
        fee_waiver: FeeWaiver | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.fee_waiver = fee_waiver or institution_waiver(settings)

    def fee_for_role(self, role: str) -> Decimal:
        return self.settings.student_fee if normalize_role(role) == "student" else self.settings.scholar_fee

    # ---------------- queries ----------------

    def payable_paper(self, uid: str) -> Submission | None:
        stmt = (
            select(Submission)
            .where(
                Submission.owner_uid == uid,
                Submission.submission_type == SubmissionType.FULL_PAPER.value,
                Submission.status.in_(PAYABLE_PAPER_STATUSES),
            )
            .order_by(Submission.created_at)
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def successful_registration(self, uid: str) -> PaymentTransaction | None:
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.uid == uid,
                PaymentTransaction.payment_type == PaymentType.REGISTRATION_FEE.value,
                PaymentTransaction.status == PaymentStatus.SUCCESS.value,
            )
            .order_by(PaymentTransaction.completed_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def latest_registration(self, uid: str) -> PaymentTransaction | None:
        paid = self.successful_registration(uid)
        if paid is not None:
            return paid
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.uid == uid,
                PaymentTransaction.payment_type == PaymentType.REGISTRATION_FEE.value,
            )
            .order_by(PaymentTransaction.created_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_transaction(self, txnid: str) -> PaymentTransaction:
        txn = self.db.get(PaymentTransaction, txnid)
        if txn is None:
            raise NotFound("Transaction not found.")
        return txn

    def status(self, uid: str) -> dict[str, Any]:
        if not uid or not uid.strip():
            raise ValidationError("User ID is required.")
        paper = self.payable_paper(uid)
        if paper is None:
            return {"success": True, "hasApprovedPaper": False, "paymentStatus": None}

        txn = self.latest_registration(uid)
        if txn is None:
            payment_status = "unpaid"
        else:
            payment_status = {
                PaymentStatus.SUCCESS.value: "paid",
                PaymentStatus.INITIATED.value: "pending",
                PaymentStatus.FAILURE.value: "failed",
            }[txn.status]

        return {
            "success": True,
            "hasApprovedPaper": True,
            "paymentStatus": payment_status,
            "paymentAmount": float(txn.amount) if txn is not None else None,
            "paymentTxnId": txn.txnid if txn is not None else None,
            "paymentDate": isoformat(txn.completed_at) if txn is not None else None,
        }

    def transaction_status(self, txnid: str) -> dict[str, Any]:
        """Projection of one transaction for the payment-result page."""
        if not txnid or not txnid.strip():
            raise ValidationError("Transaction ID is required.")
        txn = self.get_transaction(txnid.strip())
        return {
            "success": True,
            "txnid": txn.txnid,
            "status": txn.status,
            "paymentType": txn.payment_type,
            "amount": float(txn.amount),
            "receiptNumber": txn.receipt_number,
            "paymentDate": isoformat(txn.completed_at),
        }

    def attendee_status(self, email: str) -> dict[str, Any]:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required.")
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.email == email,
                PaymentTransaction.payment_type == PaymentType.ATTENDEE_REGISTRATION.value,
                PaymentTransaction.status == PaymentStatus.SUCCESS.value,
            )
            .order_by(PaymentTransaction.completed_at.desc())
            .limit(1)
        )
        txn = self.db.execute(stmt).scalar_one_or_none()
        if txn is None:
            return {"success": True, "isRegistered": False}
        return {
            "success": True,
            "isRegistered": True,
            "name": txn.first_name,
            "email": txn.email,
            "txnid": txn.txnid,
            "receiptNumber": txn.receipt_number,
            "paymentDate": isoformat(txn.completed_at),
            "amount": float(txn.amount),
        }

    # ---------------- initiation ----------------

    def initiate_registration(
        self,
        uid: str,
        frontend_url: str | None = None,
        callback_base_url: str | None = None,
    ) -> PaymentInitiation:
        if not uid or not uid.strip():
            raise ValidationError("User ID is required.")
        user = get_user_or_404(self.db, uid)

        paper = self.payable_paper(uid)
        if paper is None:
            raise PrecursorMissing(
                "No approved full paper found. Payment is only available for accepted papers.",
                code="NO_APPROVED_PAPER",
            )

        paid = self.successful_registration(uid)
        if paid is not None:
            raise AlreadyPaid("Payment has already been completed for this paper.", txnid=paid.txnid)

        waiver_reason = self.fee_waiver(user)
        if waiver_reason:
            logger.info("registration_fee_waived", user_id=uid, reason=waiver_reason)
            return PaymentInitiation(payment_required=False, reason=waiver_reason)

        role = normalize_role(user.role)
        txn = PaymentTransaction(
            txnid=new_txn_id(),
            uid=uid,
            submission_id=paper.id,
            first_name=(user.name or "").strip() or DEFAULT_FIRST_NAME,
            email=(user.email or "").strip(),
            phone=(user.phone or "").strip() or DEFAULT_PHONE,
            amount=self.fee_for_role(role),
            product_info=f"Conference Fee - {role_label(role)}",
            role=role,
            payment_type=PaymentType.REGISTRATION_FEE.value,
            status=PaymentStatus.INITIATED.value,
            frontend_url=frontend_url or self.settings.frontend_url,
        )
        return self._initiate(txn, callback_base_url, "payment")

    def initiate_attendee(
        self,
        name: str | None,
        email: str | None,
        phone: str | None,
        organization: str | None = None,
        frontend_url: str | None = None,
        callback_base_url: str | None = None,
    ) -> PaymentInitiation:
        name = (name or "").strip()
        email = (email or "").strip()
        phone = (phone or "").strip()
        if not name:
            raise ValidationError("Full name is required.")
        if not email:
            raise ValidationError("Email is required.")
        if not phone:
            raise ValidationError("Phone number is required.")
        if not EMAIL_RE.match(email):
            raise ValidationError("Invalid email format.")
        digits = re.sub(r"\D", "", phone)
        if len(digits) < 10:
            raise ValidationError("Invalid phone number.")

        email = email.lower()
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.email == email,
                PaymentTransaction.payment_type == PaymentType.ATTENDEE_REGISTRATION.value,
                PaymentTransaction.status == PaymentStatus.SUCCESS.value,
            )
            .limit(1)
        )
        existing = self.db.execute(stmt).scalar_one_or_none()
        if existing is not None:
            raise AlreadyPaid("This email is already registered as an attendee.", txnid=existing.txnid)

        txn = PaymentTransaction(
            txnid=new_txn_id(),
            first_name=name,
            email=email,
            phone=digits[-10:],
            organization=(organization or "").strip(),
            amount=self.settings.attendee_fee,
            product_info=ATTENDEE_PRODUCT_INFO,
            payment_type=PaymentType.ATTENDEE_REGISTRATION.value,
            status=PaymentStatus.INITIATED.value,
            frontend_url=frontend_url or self.settings.frontend_url,
        )
        return self._initiate(txn, callback_base_url, "attendee-payment")

    def _initiate(self, txn: PaymentTransaction, callback_base_url: str | None, callback_path: str) -> PaymentInitiation:
        amount = txn.amount_str
        key = self.settings.easebuzz_merchant_key
        backend = (callback_base_url or self.settings.backend_url or "").rstrip("/")
        api_prefix = self.settings.api_prefix.rstrip("/")

        params = {
            "key": key,
            "txnid": txn.txnid,
            "amount": amount,
            "productinfo": txn.product_info,
            "firstname": txn.first_name,
            "email": txn.email,
            "phone": txn.phone or DEFAULT_PHONE,
            "surl": f"{backend}{api_prefix}/{callback_path}-success",
            "furl": f"{backend}{api_prefix}/{callback_path}-failure",
            "hash": forward_hash(
                key=key,
                txnid=txn.txnid,
                amount=amount,
                product_info=txn.product_info,
                first_name=txn.first_name,
                email=txn.email,
                salt=self.settings.easebuzz_merchant_salt,
            ),
        }

        # nothing is persisted unless the gateway accepted the request
        access_key = self.gateway.initiate_link(params)

        self.db.add(txn)
        self.db.commit()
        logger.info(
            "payment_initiated",
            txnid=txn.txnid,
            user_id=txn.uid,
            payment_type=txn.payment_type,
            amount=amount,
        )
        return PaymentInitiation(
            payment_required=True,
            txnid=txn.txnid,
            amount=amount,
            role=txn.role,
            payment_url=self.gateway.payment_url(access_key),
            access_key=access_key,
        )

    # ---------------- callbacks ----------------

    def handle_callback(self, payload: dict[str, str], outcome: CallbackOutcome) -> CallbackResult:
        """Verify a gateway callback and settle its transaction at most once.

        Raises IntegrityFailure when the reverse hash or the amount does not
        match, or when the signed status contradicts the callback route; in
        that case nothing is written.
        """
        txnid = (payload.get("txnid") or "").strip() or None
        gateway_status = (payload.get("status") or "").strip()
        amount = payload.get("amount") or ""

        verified = verify_reverse_hash(
            payload.get("hash"),
            salt=self.settings.easebuzz_merchant_salt,
            status=gateway_status,
            email=payload.get("email") or "",
            first_name=payload.get("firstname") or "",
            product_info=payload.get("productinfo") or "",
            amount=amount,
            txnid=txnid or "",
            key=self.settings.easebuzz_merchant_key,
        )
        if not verified:
            logger.warning("payment_callback_hash_mismatch", txnid=txnid, outcome=outcome.value)
            raise IntegrityFailure(txnid, reason="hash_mismatch")

        txn = self.db.get(PaymentTransaction, txnid) if txnid else None
        if txn is None:
            logger.warning("payment_callback_unknown_transaction", txnid=txnid, outcome=outcome.value)
            return CallbackResult(CallbackDisposition.UNKNOWN_TRANSACTION, txnid)

        if _normalize_amount(amount) != txn.amount_str:
            logger.warning(
                "payment_callback_amount_mismatch",
                txnid=txnid,
                expected=txn.amount_str,
                received=amount,
            )
            raise IntegrityFailure(txnid, reason="amount_mismatch")

        # the signed status decides; the route only has to agree with it
        success = gateway_status.lower() == CallbackOutcome.SUCCESS.value
        if success != (outcome is CallbackOutcome.SUCCESS):
            logger.warning(
                "payment_callback_status_mismatch",
                txnid=txnid,
                outcome=outcome.value,
                gateway_status=gateway_status,
            )
            raise IntegrityFailure(txnid, reason="status_mismatch")

        now = utcnow()
        values: dict[str, Any] = {
            "status": PaymentStatus.SUCCESS.value if success else PaymentStatus.FAILURE.value,
            "gateway_status": gateway_status or outcome.value,
            "completed_at": now,
        }
        if success:
            prefix = self.settings.attendee_receipt_prefix if txn.is_attendee else self.settings.receipt_prefix
            values["receipt_number"] = f"{prefix}-{txnid}"

        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.txnid == txnid,
                PaymentTransaction.status == PaymentStatus.INITIATED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        self.db.refresh(txn)

        if result.rowcount == 0:
            logger.info("payment_callback_duplicate", txnid=txnid, current_status=txn.status)
            disposition = CallbackDisposition.DUPLICATE
        else:
            logger.info("payment_settled", txnid=txnid, status=txn.status, gateway_status=txn.gateway_status)
            disposition = CallbackDisposition.APPLIED

        return CallbackResult(
            disposition=disposition,
            txnid=txnid,
            status=txn.status,
            amount=txn.amount_str,
            is_attendee=txn.is_attendee,
            frontend_url=txn.frontend_url,
        )
