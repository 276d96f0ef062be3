import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.api.deps import get_submission_service, read_upload
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.db.session import get_db
from app.schemas.submission import AuthorIn, ReviewRequest, StartReviewRequest, submission_payload
from app.services.identity import resolve_admin
from app.services.submissions import SubmissionService

router = APIRouter(tags=["submissions"])

_authors_adapter = TypeAdapter(list[AuthorIn])


def _parse_authors(raw: str) -> list[AuthorIn]:
    """Authors arrive as a JSON array inside the multipart form."""
    try:
        return _authors_adapter.validate_json(raw or "[]")
    except PydanticValidationError as exc:
        raise ValidationError("authors must be a JSON array of author objects.") from exc


@router.post("/submissions/abstract", status_code=201)
def create_abstract(
    uid: str = Form(""),
    title: str = Form(""),
    authors: str = Form("[]"),
    referenceNumber: str | None = Form(None),
    document: UploadFile | None = File(None),
    service: SubmissionService = Depends(get_submission_service),
):
    submission = service.create_abstract(
        uid,
        title,
        _parse_authors(authors),
        document=read_upload(document, settings.max_paper_bytes),
        reference_number=referenceNumber or None,
    )
    return {"success": True, "submission": submission_payload(submission)}


@router.post("/submissions/full-paper", status_code=201)
def create_full_paper(
    uid: str = Form(""),
    title: str = Form(""),
    authors: str = Form("[]"),
    referenceNumber: str | None = Form(None),
    pdfUrl: str | None = Form(None),
    paper: UploadFile | None = File(None),
    service: SubmissionService = Depends(get_submission_service),
):
    submission = service.create_full_paper(
        uid,
        title,
        _parse_authors(authors),
        pdf=read_upload(paper, settings.max_paper_bytes),
        pdf_url=pdfUrl or None,
        reference_number=referenceNumber or None,
    )
    return {"success": True, "submission": submission_payload(submission)}


@router.get("/submissions")
def list_submissions(uid: str, service: SubmissionService = Depends(get_submission_service)):
    submissions = service.list_for_owner(uid)
    return {
        "success": True,
        "count": len(submissions),
        "submissions": [submission_payload(s) for s in submissions],
    }


@router.post("/admin/submissions/{submissionId}/review")
def review_submission(
    submissionId: uuid.UUID,
    body: ReviewRequest,
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    admin = resolve_admin(db, body.admin_id)
    submission = service.review(submissionId, admin, body.status, body.comments)
    return {"success": True, "submission": submission_payload(submission)}


@router.post("/admin/submissions/{submissionId}/start-review")
def start_review(
    submissionId: uuid.UUID,
    body: StartReviewRequest,
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    admin = resolve_admin(db, body.admin_id)
    submission = service.start_review(submissionId, admin)
    return {"success": True, "submission": submission_payload(submission)}
