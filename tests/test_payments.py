from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    AlreadyPaid,
    IntegrityFailure,
    NotFound,
    PrecursorMissing,
    UpstreamGatewayError,
    ValidationError,
)
from app.core.timeutils import utcnow
from app.models.payment import PaymentStatus, PaymentTransaction, PaymentType
from app.services.payments.hashing import forward_hash
from app.services.payments.reconciliation import PaymentReconciler
from app.services.payments.service import CallbackDisposition, CallbackOutcome, PaymentService
from helpers import ACCESS_KEY, add_transaction, authors_for, callback_payload, pdf_file


def _transaction_count(db) -> int:
    return db.scalar(select(func.count()).select_from(PaymentTransaction))


# ---------------- initiation ----------------


def test_initiate_registration_signs_and_persists(payment_service, accepted_paper, author, gateway_stub, settings, db):
    initiation = payment_service.initiate_registration(author.uid, frontend_url="https://app.test")

    assert initiation.payment_required
    assert initiation.amount == "500.00"
    assert initiation.role == "scholar"
    assert initiation.access_key == ACCESS_KEY
    assert initiation.payment_url == f"https://testpay.easebuzz.in/pay/{ACCESS_KEY}"

    sent = gateway_stub.requests[0]
    assert sent["txnid"] == initiation.txnid
    assert sent["productinfo"] == "Conference Fee - Scholar"
    assert sent["surl"] == "https://backend.test/api/payment-success"
    assert sent["furl"] == "https://backend.test/api/payment-failure"
    assert sent["hash"] == forward_hash(
        key=settings.easebuzz_merchant_key,
        txnid=initiation.txnid,
        amount="500.00",
        product_info="Conference Fee - Scholar",
        first_name=author.name,
        email=author.email,
        salt=settings.easebuzz_merchant_salt,
    )
    assert settings.easebuzz_merchant_salt not in sent.values()

    txn = db.get(PaymentTransaction, initiation.txnid)
    assert txn.status == PaymentStatus.INITIATED.value
    assert txn.submission_id == accepted_paper.id
    assert txn.frontend_url == "https://app.test"


def test_student_fee(payment_service, submission_service, make_user, admin, db):
    student = make_user("student-1", role="student")
    abstract = submission_service.create_abstract(student.uid, "T", authors_for(student))
    submission_service.review(abstract.id, admin, "accepted")
    paper = submission_service.create_full_paper(student.uid, "T", authors_for(student), pdf=pdf_file())
    submission_service.review(paper.id, admin, "accepted_with_revision")

    initiation = payment_service.initiate_registration(student.uid)

    assert initiation.amount == "250.00"
    assert db.get(PaymentTransaction, initiation.txnid).product_info == "Conference Fee - Student"


def test_registration_requires_accepted_paper(payment_service, author, db):
    with pytest.raises(PrecursorMissing):
        payment_service.initiate_registration(author.uid)
    assert _transaction_count(db) == 0


def test_registration_for_unknown_user(payment_service):
    with pytest.raises(NotFound):
        payment_service.initiate_registration("ghost")


def test_registration_already_paid(payment_service, accepted_paper, author, db):
    paid = add_transaction(db, uid=author.uid, status=PaymentStatus.SUCCESS.value, completed_at=utcnow())

    with pytest.raises(AlreadyPaid) as excinfo:
        payment_service.initiate_registration(author.uid)
    assert excinfo.value.details == {"paymentTxnId": paid.txnid}


def test_fee_waiver_skips_gateway(payment_service, accepted_paper, author, gateway_stub, db):
    author.institution = "  Union Christian College "
    db.commit()

    initiation = payment_service.initiate_registration(author.uid)

    assert not initiation.payment_required
    assert initiation.reason == "Institutional Fee Waiver"
    assert initiation.to_response() == {
        "success": True,
        "paymentRequired": False,
        "reason": "Institutional Fee Waiver",
    }
    assert gateway_stub.requests == []
    assert _transaction_count(db) == 0


def test_injected_fee_waiver(db, gateway, settings, accepted_paper, author, gateway_stub):
    service = PaymentService(db, gateway, settings, fee_waiver=lambda user: "Keynote speaker")

    initiation = service.initiate_registration(author.uid)

    assert initiation.reason == "Keynote speaker"
    assert gateway_stub.requests == []


def test_gateway_refusal_persists_nothing(payment_service, accepted_paper, author, gateway_stub, db):
    gateway_stub.response = {"status": 0, "data": "Invalid merchant key"}

    with pytest.raises(UpstreamGatewayError):
        payment_service.initiate_registration(author.uid)
    assert _transaction_count(db) == 0


def test_gateway_transport_error_persists_nothing(payment_service, accepted_paper, author, gateway_stub, db):
    gateway_stub.raise_error = httpx.ConnectTimeout("timed out")

    with pytest.raises(UpstreamGatewayError):
        payment_service.initiate_registration(author.uid)
    assert _transaction_count(db) == 0


def test_attendee_payment(payment_service, gateway_stub, db):
    initiation = payment_service.initiate_attendee(
        " Meera ",
        "Meera@Example.com",
        "+91 98765-43210",
        organization="IISER",
    )

    assert initiation.amount == "100.00"
    assert initiation.role is None
    txn = db.get(PaymentTransaction, initiation.txnid)
    assert txn.payment_type == PaymentType.ATTENDEE_REGISTRATION.value
    assert txn.uid is None
    assert txn.email == "meera@example.com"
    assert txn.phone == "9876543210"
    assert txn.first_name == "Meera"
    assert txn.product_info == "Attendee Registration Fee"
    assert gateway_stub.requests[0]["surl"] == "https://backend.test/api/attendee-payment-success"


@pytest.mark.parametrize(
    "name,email,phone",
    [
        ("", "a@b.io", "9876543210"),
        ("Meera", "", "9876543210"),
        ("Meera", "not-an-email", "9876543210"),
        ("Meera", "a@b.io", ""),
        ("Meera", "a@b.io", "12345"),
    ],
)
def test_attendee_validation(payment_service, name, email, phone):
    with pytest.raises(ValidationError):
        payment_service.initiate_attendee(name, email, phone)


def test_attendee_duplicate_paid_email(payment_service, db):
    add_transaction(
        db,
        email="meera@example.com",
        payment_type=PaymentType.ATTENDEE_REGISTRATION.value,
        status=PaymentStatus.SUCCESS.value,
    )

    with pytest.raises(AlreadyPaid):
        payment_service.initiate_attendee("Meera", "MEERA@example.com", "9876543210")


# ---------------- callbacks ----------------


def test_scenario_paid_then_replayed(payment_service, accepted_paper, author, settings, db):
    initiation = payment_service.initiate_registration(author.uid)
    txn = db.get(PaymentTransaction, initiation.txnid)
    payload = callback_payload(settings, txn)

    first = payment_service.handle_callback(payload, CallbackOutcome.SUCCESS)
    assert first.disposition is CallbackDisposition.APPLIED
    assert first.status == PaymentStatus.SUCCESS.value

    db.refresh(txn)
    completed_at = txn.completed_at
    assert txn.receipt_number == f"EVT-2026-{txn.txnid}"
    assert txn.gateway_status == "success"

    second = payment_service.handle_callback(payload, CallbackOutcome.SUCCESS)
    assert second.disposition is CallbackDisposition.DUPLICATE
    db.refresh(txn)
    assert txn.completed_at == completed_at

    # a late failure delivery cannot undo a settled payment
    late = payment_service.handle_callback(callback_payload(settings, txn, status="failure"), CallbackOutcome.FAILURE)
    assert late.disposition is CallbackDisposition.DUPLICATE
    assert late.status == PaymentStatus.SUCCESS.value

    status = payment_service.status(author.uid)
    assert status["paymentStatus"] == "paid"
    assert status["paymentTxnId"] == txn.txnid
    assert status["paymentAmount"] == 500.0


BOTH_OUTCOMES = pytest.mark.parametrize(
    "outcome,signed_status",
    [(CallbackOutcome.SUCCESS, "success"), (CallbackOutcome.FAILURE, "failure")],
)


@BOTH_OUTCOMES
def test_tampered_amount_is_rejected(payment_service, settings, db, outcome, signed_status):
    txn = add_transaction(db)
    payload = callback_payload(settings, txn, status=signed_status)
    payload["amount"] = "1.00"

    with pytest.raises(IntegrityFailure) as excinfo:
        payment_service.handle_callback(payload, outcome)

    assert excinfo.value.reason == "hash_mismatch"
    db.refresh(txn)
    assert txn.status == PaymentStatus.INITIATED.value
    assert txn.gateway_status is None
    assert txn.completed_at is None


@pytest.mark.parametrize("signed_status", ["userCancelled", "failure", "dropped"])
def test_signed_non_success_cannot_settle_as_paid(payment_service, settings, db, signed_status):
    txn = add_transaction(db)

    with pytest.raises(IntegrityFailure) as excinfo:
        payment_service.handle_callback(callback_payload(settings, txn, status=signed_status), CallbackOutcome.SUCCESS)

    assert excinfo.value.reason == "status_mismatch"
    db.refresh(txn)
    assert txn.status == PaymentStatus.INITIATED.value
    assert txn.receipt_number is None
    assert txn.completed_at is None


def test_signed_success_cannot_settle_as_failed(payment_service, settings, db):
    txn = add_transaction(db)

    with pytest.raises(IntegrityFailure) as excinfo:
        payment_service.handle_callback(callback_payload(settings, txn, status="success"), CallbackOutcome.FAILURE)

    assert excinfo.value.reason == "status_mismatch"
    db.refresh(txn)
    assert txn.status == PaymentStatus.INITIATED.value

    settled = payment_service.handle_callback(callback_payload(settings, txn, status="success"), CallbackOutcome.SUCCESS)
    assert settled.disposition is CallbackDisposition.APPLIED


def test_signed_amount_mismatch_is_rejected(payment_service, settings, db):
    txn = add_transaction(db)

    with pytest.raises(IntegrityFailure) as excinfo:
        payment_service.handle_callback(callback_payload(settings, txn, amount="5.00"), CallbackOutcome.SUCCESS)

    assert excinfo.value.reason == "amount_mismatch"
    db.refresh(txn)
    assert txn.status == PaymentStatus.INITIATED.value


@BOTH_OUTCOMES
def test_missing_hash_is_rejected(payment_service, settings, db, outcome, signed_status):
    txn = add_transaction(db)
    payload = callback_payload(settings, txn, status=signed_status)
    del payload["hash"]

    with pytest.raises(IntegrityFailure) as excinfo:
        payment_service.handle_callback(payload, outcome)

    assert excinfo.value.reason == "hash_mismatch"
    db.refresh(txn)
    assert txn.status == PaymentStatus.INITIATED.value
    assert txn.completed_at is None


def test_unknown_transaction_is_ignored(payment_service, settings, db):
    ghost = PaymentTransaction(
        txnid="TXN_0_ABCDEF",
        first_name="Asha",
        email="asha@example.com",
        amount=Decimal("500.00"),
        product_info="Conference Fee - Scholar",
    )

    result = payment_service.handle_callback(callback_payload(settings, ghost), CallbackOutcome.SUCCESS)

    assert result.disposition is CallbackDisposition.UNKNOWN_TRANSACTION
    assert _transaction_count(db) == 0


def test_failure_callback(payment_service, accepted_paper, author, settings, db):
    txn = add_transaction(db, uid=author.uid)

    result = payment_service.handle_callback(callback_payload(settings, txn, status="userCancelled"), CallbackOutcome.FAILURE)

    assert result.status == PaymentStatus.FAILURE.value
    db.refresh(txn)
    assert txn.gateway_status == "userCancelled"
    assert txn.receipt_number is None
    assert payment_service.status(author.uid)["paymentStatus"] == "failed"


def test_attendee_receipt_number_prefix(payment_service, settings, db):
    txn = add_transaction(
        db,
        amount=Decimal("100.00"),
        product_info="Attendee Registration Fee",
        payment_type=PaymentType.ATTENDEE_REGISTRATION.value,
        role=None,
    )

    result = payment_service.handle_callback(callback_payload(settings, txn), CallbackOutcome.SUCCESS)

    assert result.is_attendee
    db.refresh(txn)
    assert txn.receipt_number == f"EVT-ATT-2026-{txn.txnid}"


# ---------------- status ----------------


def test_status_without_paper(payment_service, author):
    assert payment_service.status(author.uid) == {
        "success": True,
        "hasApprovedPaper": False,
        "paymentStatus": None,
    }


def test_attendee_status(payment_service, settings, db):
    assert payment_service.attendee_status("meera@example.com") == {"success": True, "isRegistered": False}

    txn = add_transaction(
        db,
        first_name="Meera",
        email="meera@example.com",
        amount=Decimal("100.00"),
        product_info="Attendee Registration Fee",
        payment_type=PaymentType.ATTENDEE_REGISTRATION.value,
        role=None,
    )
    # an initiated payment is not a registration yet
    assert payment_service.attendee_status("meera@example.com")["isRegistered"] is False

    payment_service.handle_callback(callback_payload(settings, txn), CallbackOutcome.SUCCESS)
    status = payment_service.attendee_status(" MEERA@example.com ")

    assert status["isRegistered"] is True
    assert status["name"] == "Meera"
    assert status["txnid"] == txn.txnid
    assert status["receiptNumber"] == f"EVT-ATT-2026-{txn.txnid}"
    assert status["amount"] == 100.0
    assert status["paymentDate"]


def test_attendee_status_ignores_registration_fees(payment_service, db):
    add_transaction(db, email="asha@example.com", status=PaymentStatus.SUCCESS.value)

    assert payment_service.attendee_status("asha@example.com")["isRegistered"] is False
    with pytest.raises(ValidationError):
        payment_service.attendee_status("  ")


def test_transaction_status(payment_service, db):
    txn = add_transaction(db)

    assert payment_service.transaction_status(txn.txnid) == {
        "success": True,
        "txnid": txn.txnid,
        "status": "initiated",
        "paymentType": "registration_fee",
        "amount": 500.0,
        "receiptNumber": None,
        "paymentDate": None,
    }
    with pytest.raises(NotFound):
        payment_service.transaction_status("TXN_missing")


def test_status_unpaid_and_pending(payment_service, accepted_paper, author):
    assert payment_service.status(author.uid)["paymentStatus"] == "unpaid"

    payment_service.initiate_registration(author.uid)
    assert payment_service.status(author.uid)["paymentStatus"] == "pending"


# ---------------- reconciliation ----------------


def test_expire_abandoned_transactions(db, settings):
    now = utcnow()
    stale = add_transaction(db, created_at=now - timedelta(hours=30))
    fresh = add_transaction(db, created_at=now - timedelta(hours=1))
    settled = add_transaction(
        db,
        created_at=now - timedelta(hours=48),
        status=PaymentStatus.SUCCESS.value,
        completed_at=now - timedelta(hours=47),
    )

    expired = PaymentReconciler(db, settings).expire_abandoned(now=now)

    assert expired == 1
    for txn in (stale, fresh, settled):
        db.refresh(txn)
    assert stale.status == PaymentStatus.FAILURE.value
    assert stale.gateway_status == "expired"
    assert fresh.status == PaymentStatus.INITIATED.value
    assert settled.status == PaymentStatus.SUCCESS.value


def test_callback_after_expiry_is_a_no_op(payment_service, db, settings):
    txn = add_transaction(db, created_at=utcnow() - timedelta(hours=25))
    PaymentReconciler(db, settings).expire_abandoned()

    result = payment_service.handle_callback(callback_payload(settings, txn), CallbackOutcome.SUCCESS)

    assert result.disposition is CallbackDisposition.DUPLICATE
    assert result.status == PaymentStatus.FAILURE.value
