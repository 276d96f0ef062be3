from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.submission import PaperVersion, Submission


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AuthorIn(CamelModel):
    name: str = ""
    affiliation: str = ""
    email: str | None = None
    phone: str | None = None
    is_main_author: bool = False


class ReviewRequest(CamelModel):
    admin_id: str
    status: str
    comments: str | None = None


class StartReviewRequest(CamelModel):
    admin_id: str


class SubmissionOut(CamelModel):
    id: uuid.UUID
    owner_uid: str
    reference_number: str
    submission_type: str
    title: str
    authors: list[dict[str, Any]] = Field(default_factory=list)
    status: str
    pdf_url: str | None = None
    doc_name: str | None = None
    current_version: int
    review_comments: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    last_revision_at: datetime | None = None


class PaperVersionOut(CamelModel):
    version: int
    file_url: str
    submitted_at: datetime
    status: str
    admin_comment: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    is_current: bool


def submission_payload(submission: Submission) -> dict[str, Any]:
    return SubmissionOut.model_validate(submission).model_dump(by_alias=True, mode="json")


def version_payload(version: PaperVersion, submission: Submission) -> dict[str, Any]:
    out = PaperVersionOut.model_validate(version)
    if version.is_current:
        # review data for the live version lives on the submission until the next resubmission archives it
        out.status = submission.status
        out.admin_comment = submission.review_comments
        out.reviewed_by = submission.reviewed_by
        out.reviewed_at = submission.reviewed_at
    return out.model_dump(by_alias=True, mode="json")
