from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED)


class CreateSubmissionRequest(BaseModel):
    artifact_url: Optional[str] = Field(default=None, min_length=1)
    image_data: Optional[str] = Field(default=None, min_length=1, description="Base64 encoded image")
    question: str = Field(..., min_length=8, max_length=280)
    answer: str = Field(..., min_length=1, max_length=1000)
    translated_question: Optional[str] = Field(default=None, max_length=280)
    translated_answer: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _one_artifact(self) -> "CreateSubmissionRequest":
        if bool(self.artifact_url) == bool(self.image_data):
            raise ValueError("Provide exactly one of artifact_url or image_data")
        return self

    def artifact_reference(self) -> str:
        if self.artifact_url:
            return self.artifact_url
        if self.image_data.startswith("data:"):
            return self.image_data
        return f"data:image/jpeg;base64,{self.image_data}"


class VerdictPayload(BaseModel):
    """Body of the reviewer's verdict callback."""

    submissionId: str = Field(..., min_length=1)
    status: SubmissionStatus
    pointsAwarded: Optional[int] = Field(default=None, ge=0, strict=True)
    notes: Optional[str] = None
    n8nRunId: Optional[str] = None
    workflowId: Optional[str] = None


class Submission(BaseModel):
    id: UUID
    user_id: UUID
    artifact_url: str
    question: str
    answer: str
    translated_question: Optional[str] = None
    translated_answer: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.PENDING
    points_awarded: int = Field(default=0, ge=0)
    workflow_id: Optional[str] = None
    run_id: Optional[str] = None
    reviewer_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def has_inline_image(self) -> bool:
        return self.artifact_url.startswith("data:")


class WebhookEvent(BaseModel):
    id: UUID
    submission_id: str
    payload: Any
    source: str
    signature: Optional[str] = None
    created_at: datetime
