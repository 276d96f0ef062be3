from __future__ import annotations

import re
import time
import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import (
    InvalidTransition,
    NotFound,
    NotInRevisionState,
    PrecursorMissing,
    SubmissionConflict,
    Unauthorized,
    ValidationError,
)
from app.core.timeutils import utcnow
from app.models.submission import PaperVersion, Submission, SubmissionStatus, SubmissionType
from app.schemas.submission import AuthorIn
from app.services.identity import AdminIdentity, get_user_or_404
from app.services.reference_allocator import ReferenceAllocator
from app.services.storage import ObjectStorage
from app.services.uploads import UploadedFile, check_abstract_document, check_paper

logger = structlog.get_logger(__name__)

MAX_AUTHORS = 6
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REVIEW_TARGETS = {
    SubmissionStatus.ACCEPTED,
    SubmissionStatus.REJECTED,
    SubmissionStatus.ACCEPTED_WITH_REVISION,
}
# accepted_with_revision waits for the owner's resubmission; accepted/rejected are final
REVIEWABLE_FROM = {
    SubmissionStatus.PENDING,
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.PENDING_REVIEW,
}
START_REVIEW_FROM = {
    SubmissionStatus.PENDING,
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.PENDING_REVIEW,
}


def validate_authors(authors: list[AuthorIn]) -> list[dict[str, Any]]:
    """Check the author list and return it in stored form.

    The first entry is the main author and needs every contact field;
    co-authors only need name and affiliation.
    """
    if not authors:
        raise ValidationError("At least one author is required.")
    if len(authors) > MAX_AUTHORS:
        raise ValidationError(f"A submission can list at most {MAX_AUTHORS} authors.")

    cleaned = []
    for index, author in enumerate(authors):
        is_main = index == 0
        name = (author.name or "").strip()
        affiliation = (author.affiliation or "").strip()
        email = (author.email or "").strip() or None
        phone = (author.phone or "").strip() or None
        label = "Main author" if is_main else f"Co-author {index}"

        if not name:
            raise ValidationError(f"{label}: name is required.")
        if not affiliation:
            raise ValidationError(f"{label}: affiliation is required.")
        if is_main:
            if not email:
                raise ValidationError("Main author: email is required.")
            if not phone:
                raise ValidationError("Main author: phone is required.")
        if email and not EMAIL_RE.match(email):
            raise ValidationError(f"{label}: invalid email format.")

        cleaned.append({
            "name": name,
            "affiliation": affiliation,
            "email": email,
            "phone": phone,
            "isMainAuthor": is_main,
        })
    return cleaned


def parse_status(value: str) -> SubmissionStatus:
    try:
        return SubmissionStatus((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown submission status '{value}'.") from None


def _require_title(title: str) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    return title


def _millis() -> int:
    return time.time_ns() // 1_000_000


class SubmissionService:
    def __init__(
        self,
        db: Session,
        storage: ObjectStorage,
        allocator: ReferenceAllocator,
        settings: Settings,
    ):
        self.db = db
        self.storage = storage
        self.allocator = allocator
        self.settings = settings

    # ---------------- reads ----------------

    def get(self, submission_id: uuid.UUID, *, for_update: bool = False) -> Submission:
        stmt = select(Submission).where(Submission.id == submission_id)
        if for_update:
            stmt = stmt.with_for_update()
        submission = self.db.execute(stmt).scalar_one_or_none()
        if submission is None:
            raise NotFound("Paper submission not found.")
        return submission

    def list_for_owner(self, owner_uid: str) -> list[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.owner_uid == owner_uid)
            .order_by(Submission.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars())

    def find_accepted_abstract(self, owner_uid: str, reference_number: str | None = None) -> Submission | None:
        stmt = select(Submission).where(
            Submission.owner_uid == owner_uid,
            Submission.submission_type == SubmissionType.ABSTRACT.value,
            Submission.status == SubmissionStatus.ACCEPTED.value,
        )
        if reference_number:
            stmt = stmt.where(Submission.reference_number == reference_number)
        return self.db.execute(stmt.order_by(Submission.created_at).limit(1)).scalar_one_or_none()

    def _exists(self, reference_number: str, submission_type: SubmissionType) -> bool:
        stmt = select(Submission.id).where(
            Submission.reference_number == reference_number,
            Submission.submission_type == submission_type.value,
        )
        return self.db.execute(stmt).first() is not None

    def list_versions(
        self,
        submission_id: uuid.UUID,
        viewer_uid: str | None = None,
        admin: AdminIdentity | None = None,
    ) -> Submission:
        submission = self.get(submission_id)
        if admin is None and submission.owner_uid != viewer_uid:
            raise Unauthorized("You can only view versions of your own papers.")
        return submission

    # ---------------- writes ----------------

    def create_abstract(
        self,
        owner_uid: str,
        title: str,
        authors: list[AuthorIn],
        document: UploadedFile | None = None,
        reference_number: str | None = None,
    ) -> Submission:
        title = _require_title(title)
        stored_authors = validate_authors(authors)
        if document is not None:
            check_abstract_document(document, self.settings.max_paper_bytes)
        get_user_or_404(self.db, owner_uid)

        if reference_number and self._exists(reference_number, SubmissionType.ABSTRACT):
            raise SubmissionConflict(f"An abstract with reference {reference_number} already exists.")
        reference = reference_number or self.allocator.allocate_next()

        doc_url = None
        if document is not None:
            key = f"conference/abstracts/{reference}_{_millis()}_{document.safe_name}"
            doc_url = self.storage.upload_bytes(document.data, key, document.content_type)

        submission = Submission(
            owner_uid=owner_uid,
            reference_number=reference,
            submission_type=SubmissionType.ABSTRACT.value,
            title=title,
            authors=stored_authors,
            status=SubmissionStatus.PENDING.value,
            pdf_url=doc_url,
            doc_name=document.filename if document is not None else None,
            current_version=1,
        )
        self._commit_new(submission)
        logger.info("abstract_created", submission_id=str(submission.id), reference_number=reference, owner_uid=owner_uid)
        return submission

    def create_full_paper(
        self,
        owner_uid: str,
        title: str,
        authors: list[AuthorIn],
        pdf: UploadedFile | None = None,
        pdf_url: str | None = None,
        reference_number: str | None = None,
    ) -> Submission:
        title = _require_title(title)
        stored_authors = validate_authors(authors)
        if pdf is None and not pdf_url:
            raise ValidationError("No file uploaded. Please select a PDF.")
        if pdf is not None:
            check_paper(pdf, self.settings.max_paper_bytes)
        get_user_or_404(self.db, owner_uid)

        abstract = self.find_accepted_abstract(owner_uid, reference_number)
        if abstract is None:
            raise PrecursorMissing("An accepted abstract is required before submitting a full paper.")
        reference = abstract.reference_number
        if self._exists(reference, SubmissionType.FULL_PAPER):
            raise SubmissionConflict(f"A full paper for reference {reference} has already been submitted.")

        if pdf is not None:
            key = f"conference/full-papers/{reference}_v1_{_millis()}.pdf"
            pdf_url = self.storage.upload_bytes(pdf.data, key, "application/pdf")

        submission = Submission(
            owner_uid=owner_uid,
            reference_number=reference,
            submission_type=SubmissionType.FULL_PAPER.value,
            title=title,
            authors=stored_authors,
            status=SubmissionStatus.SUBMITTED.value,
            pdf_url=pdf_url,
            doc_name=pdf.filename if pdf is not None else None,
            current_version=1,
        )
        submission.versions.append(
            PaperVersion(
                version=1,
                file_url=pdf_url,
                status=SubmissionStatus.SUBMITTED.value,
                is_current=True,
            )
        )
        self._commit_new(submission)
        logger.info(
            "full_paper_created",
            submission_id=str(submission.id),
            reference_number=reference,
            abstract_id=str(abstract.id),
        )
        return submission

    def start_review(self, submission_id: uuid.UUID, admin: AdminIdentity) -> Submission:
        submission = self.get(submission_id, for_update=True)
        current = SubmissionStatus(submission.status)
        if current not in START_REVIEW_FROM:
            raise InvalidTransition(current.value, SubmissionStatus.UNDER_REVIEW.value)

        submission.status = SubmissionStatus.UNDER_REVIEW.value
        self.db.commit()
        logger.info("submission_review_started", submission_id=str(submission.id), admin_id=admin.uid)
        return submission

    def review(
        self,
        submission_id: uuid.UUID,
        admin: AdminIdentity,
        new_status: str,
        comments: str | None = None,
    ) -> Submission:
        target = parse_status(new_status)
        if target not in REVIEW_TARGETS:
            raise ValidationError(
                "Review status must be one of: accepted, rejected, accepted_with_revision."
            )

        submission = self.get(submission_id, for_update=True)
        current = SubmissionStatus(submission.status)
        if current not in REVIEWABLE_FROM:
            raise InvalidTransition(current.value, target.value)
        if target is SubmissionStatus.ACCEPTED_WITH_REVISION and not submission.is_full_paper:
            # only full papers have a resubmission path
            raise InvalidTransition(current.value, target.value)

        submission.status = target.value
        submission.reviewed_by = admin.uid
        submission.reviewed_at = utcnow()
        if comments and comments.strip():
            submission.review_comments = comments.strip()
        self.db.commit()

        logger.info(
            "submission_reviewed",
            submission_id=str(submission.id),
            admin_id=admin.uid,
            from_status=current.value,
            to_status=target.value,
        )
        return submission

    def resubmit(self, submission_id: uuid.UUID, owner_uid: str, pdf: UploadedFile | None) -> PaperVersion:
        check_paper(pdf, self.settings.max_paper_bytes)

        submission = self.get(submission_id, for_update=True)
        if submission.owner_uid != owner_uid:
            logger.warning(
                "unauthorized_resubmission_attempt",
                submission_id=str(submission.id),
                user_id=owner_uid,
            )
            raise Unauthorized("You are not authorized to resubmit this paper.")
        if not submission.is_full_paper:
            raise ValidationError("Only full paper submissions can be revised.")
        if submission.status != SubmissionStatus.ACCEPTED_WITH_REVISION.value:
            raise NotInRevisionState(submission.status)

        new_number = submission.current_version + 1
        key = f"conference/full-papers/revisions/{submission.reference_number}_v{new_number}_{_millis()}.pdf"
        file_url = self.storage.upload_bytes(pdf.data, key, "application/pdf")

        now = utcnow()
        previous = next((v for v in submission.versions if v.is_current), None)
        if previous is None:
            previous = PaperVersion(
                version=submission.current_version,
                file_url=submission.pdf_url or "",
                submitted_at=submission.updated_at or submission.created_at,
            )
            submission.versions.append(previous)
        # archive the review that triggered this revision with the version it judged
        previous.status = submission.status
        previous.admin_comment = submission.review_comments
        previous.reviewed_by = submission.reviewed_by
        previous.reviewed_at = submission.reviewed_at
        previous.is_current = False

        new_version = PaperVersion(
            version=new_number,
            file_url=file_url,
            submitted_at=now,
            status=SubmissionStatus.PENDING_REVIEW.value,
            is_current=True,
        )
        submission.versions.append(new_version)

        submission.current_version = new_number
        submission.pdf_url = file_url
        submission.doc_name = pdf.filename
        submission.status = SubmissionStatus.PENDING_REVIEW.value
        submission.review_comments = None
        submission.reviewed_by = None
        submission.reviewed_at = None
        submission.last_revision_at = now

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise SubmissionConflict("This paper was revised concurrently. Reload and try again.") from exc

        logger.info(
            "paper_resubmitted",
            submission_id=str(submission.id),
            reference_number=submission.reference_number,
            version=new_number,
        )
        return new_version

    def _commit_new(self, submission: Submission) -> None:
        self.db.add(submission)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise SubmissionConflict(
                f"A {submission.submission_type} with reference {submission.reference_number} already exists."
            ) from exc
        self.db.refresh(submission)
