from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.models.payment import PaymentStatus, PaymentTransaction, PaymentType
from app.models.user import User
from app.schemas.submission import AuthorIn
from app.services.payments.hashing import new_txn_id, reverse_hash
from app.services.uploads import UploadedFile

fake = Faker()

ACCESS_KEY = "ACCESSKEY123"
PDF_BYTES = b"%PDF-1.4 test paper"
PNG_BYTES = b"\x89PNG\r\n\x1a\n test image"


def authors_for(user: User, co_authors: int = 0) -> list[AuthorIn]:
    authors = [AuthorIn(name=user.name, affiliation="UC College", email=user.email, phone=user.phone)]
    for _ in range(co_authors):
        authors.append(AuthorIn(name=fake.name(), affiliation=fake.company()))
    return authors


def pdf_file(data: bytes = PDF_BYTES, name: str = "paper.pdf") -> UploadedFile:
    return UploadedFile(filename=name, content_type="application/pdf", data=data)


def png_file(data: bytes = PNG_BYTES, name: str = "card.png") -> UploadedFile:
    return UploadedFile(filename=name, content_type="image/png", data=data)


def callback_payload(
    settings: Settings,
    txn: PaymentTransaction,
    status: str = "success",
    amount: str | None = None,
) -> dict[str, str]:
    """Form body the gateway would post, signed with the merchant salt."""
    amount = amount or txn.amount_str
    payload = {
        "txnid": txn.txnid,
        "amount": amount,
        "productinfo": txn.product_info,
        "firstname": txn.first_name,
        "email": txn.email,
        "status": status,
    }
    payload["hash"] = reverse_hash(
        salt=settings.easebuzz_merchant_salt,
        status=status,
        email=txn.email,
        first_name=txn.first_name,
        product_info=txn.product_info,
        amount=amount,
        txnid=txn.txnid,
        key=settings.easebuzz_merchant_key,
    )
    return payload


def add_transaction(db: Session, **overrides) -> PaymentTransaction:
    values = {
        "txnid": new_txn_id(),
        "first_name": "Asha",
        "email": "asha@example.com",
        "phone": "9876543210",
        "amount": Decimal("500.00"),
        "product_info": "Conference Fee - Scholar",
        "role": "scholar",
        "payment_type": PaymentType.REGISTRATION_FEE.value,
        "status": PaymentStatus.INITIATED.value,
        "frontend_url": "https://frontend.test",
    }
    values.update(overrides)
    txn = PaymentTransaction(**values)
    db.add(txn)
    db.commit()
    return txn
