"""
Test configuration and fixtures.

Every test gets its own SQLite file, an in-memory S3 client behind the real
ObjectStorage, and an httpx MockTransport standing in for the gateway.
"""
import os
from typing import Any, Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["S3_ENSURE_BUCKET_ON_STARTUP"] = "false"
os.environ["S3_PUBLIC_URL"] = "https://files.test/conference"
os.environ["EASEBUZZ_MERCHANT_KEY"] = "TESTKEY"
os.environ["EASEBUZZ_MERCHANT_SALT"] = "TESTSALT"
os.environ["EASEBUZZ_ENV"] = "test"
os.environ["FRONTEND_URL"] = "https://frontend.test"
os.environ["BACKEND_URL"] = "https://backend.test"

from app.api.deps import get_gateway_client, get_reference_allocator, get_storage
from app.core.config import Settings, get_settings
from app.db.base import Base
from app.db.session import get_db, import_models
from app.main import app
from app.models.submission import SubmissionStatus
from app.models.user import Role, User
from app.models.user_role import ADMIN_ROLE_ID, UserRole
from app.services.identity import AdminIdentity
from app.services.payments.gateway import EasebuzzClient
from app.services.payments.service import PaymentService
from app.services.reference_allocator import ReferenceAllocator
from app.services.storage import ObjectStorage
from app.services.submissions import SubmissionService
from app.services.verification import VerificationService
from helpers import ACCESS_KEY, authors_for, fake, pdf_file


class FakeS3Client:
    """Records objects the way boto3's upload_fileobj would store them."""

    def __init__(self):
        self.objects: dict[str, dict[str, Any]] = {}
        self.buckets: set[str] = set()

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None):
        self.objects[Key] = {
            "bucket": Bucket,
            "body": Fileobj.read(),
            "content_type": (ExtraArgs or {}).get("ContentType"),
        }

    def head_bucket(self, Bucket):
        from botocore.exceptions import ClientError

        if Bucket not in self.buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, Bucket):
        self.buckets.add(Bucket)


class GatewayStub:
    """httpx MockTransport handler for the initiateLink endpoint."""

    def __init__(self):
        self.requests: list[dict[str, str]] = []
        self.response: dict[str, Any] = {"status": 1, "data": ACCESS_KEY}
        self.raise_error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.raise_error is not None:
            raise self.raise_error
        form = dict(httpx.QueryParams(request.content.decode()))
        self.requests.append(form)
        return httpx.Response(200, json=self.response)


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def engine(tmp_path):
    import_models()
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    session.add_all([
        Role(id=1, name="participant"),
        Role(id=2, name="org_committee"),
        Role(id=ADMIN_ROLE_ID, name="admin"),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(settings, s3_client) -> ObjectStorage:
    return ObjectStorage(settings, client=s3_client)


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def gateway(settings, gateway_stub) -> Generator[EasebuzzClient, None, None]:
    client = EasebuzzClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(gateway_stub)))
    yield client
    client.close()


@pytest.fixture
def allocator(session_factory, settings) -> ReferenceAllocator:
    return ReferenceAllocator(session_factory, settings)


@pytest.fixture
def submission_service(db, storage, allocator, settings) -> SubmissionService:
    return SubmissionService(db, storage, allocator, settings)


@pytest.fixture
def payment_service(db, gateway, settings) -> PaymentService:
    return PaymentService(db, gateway, settings)


@pytest.fixture
def verification_service(db, storage, settings) -> VerificationService:
    return VerificationService(db, storage, settings)


@pytest.fixture
def make_user(db):
    def _make_user(uid: str | None = None, *, role: str = "scholar", institution: str | None = None, admin: bool = False) -> User:
        user = User(
            uid=uid or fake.uuid4(),
            name=fake.name(),
            email=fake.unique.email(),
            phone="9876543210",
            role=role,
            institution=institution or fake.company(),
        )
        db.add(user)
        if admin:
            db.add(UserRole(user_id=user.uid, role_id=ADMIN_ROLE_ID))
        db.commit()
        return user

    return _make_user


@pytest.fixture
def author(make_user) -> User:
    return make_user("author-1")


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user("admin-1", admin=True)


@pytest.fixture
def admin(admin_user) -> AdminIdentity:
    return AdminIdentity(uid=admin_user.uid)


@pytest.fixture
def accepted_paper(submission_service, author, admin):
    """An author whose abstract and full paper have both been accepted."""
    abstract = submission_service.create_abstract(author.uid, "Graph Methods", authors_for(author))
    submission_service.review(abstract.id, admin, SubmissionStatus.ACCEPTED.value)
    paper = submission_service.create_full_paper(author.uid, "Graph Methods", authors_for(author), pdf=pdf_file())
    submission_service.review(paper.id, admin, SubmissionStatus.ACCEPTED.value)
    return paper


@pytest.fixture
def client(session_factory, db, storage, gateway, allocator) -> Generator[TestClient, None, None]:
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    app.dependency_overrides[get_reference_allocator] = lambda: allocator

    yield TestClient(app)

    app.dependency_overrides.clear()
