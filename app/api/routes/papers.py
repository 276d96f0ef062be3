import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_submission_service, read_upload
from app.core.config import settings
from app.db.session import get_db
from app.schemas.submission import version_payload
from app.services.identity import resolve_admin
from app.services.submissions import SubmissionService

router = APIRouter(prefix="/paper", tags=["papers"])


@router.post("/resubmit/{paperId}")
def resubmit_paper(
    paperId: uuid.UUID,
    userId: str = Form(""),
    revisedPaper: UploadFile | None = File(None),
    service: SubmissionService = Depends(get_submission_service),
):
    version = service.resubmit(paperId, userId, read_upload(revisedPaper, settings.max_paper_bytes))
    submission = service.get(paperId)
    return {
        "success": True,
        "message": f"Paper revised successfully. Now at version {version.version}.",
        "paperId": str(submission.id),
        "referenceNumber": submission.reference_number,
        "currentVersion": submission.current_version,
        "newFileUrl": version.file_url,
        "status": submission.status,
        "totalVersions": len(submission.versions),
    }


@router.get("/versions/{paperId}")
def paper_versions(
    paperId: uuid.UUID,
    userId: str | None = None,
    adminId: str | None = None,
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
):
    admin = resolve_admin(db, adminId) if adminId else None
    submission = service.list_versions(paperId, viewer_uid=userId, admin=admin)
    return {
        "success": True,
        "paperId": str(submission.id),
        "referenceNumber": submission.reference_number,
        "title": submission.title,
        "currentVersion": submission.current_version,
        "status": submission.status,
        "versions": [version_payload(v, submission) for v in submission.versions],
    }
