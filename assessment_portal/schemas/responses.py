"""Pydantic schemas for response payloads exchanged with the API.

Covers final submissions, autosaved partial responses and the read-side
records and statistics consumed by the admin console.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnswerPayload(BaseModel):
    """Answer as sent over the wire.

    Attributes:
        question: Question identifier
        answer_text: Flattened answer (checkbox tokens comma-joined)
    """
    question: int
    answer_text: str = ""


class SubmissionPayload(BaseModel):
    """Body of ``POST /responses/``."""
    assessment: int
    respondent_email: str
    answers: list[AnswerPayload] = Field(default_factory=list)


class PartialResponse(BaseModel):
    """Autosaved snapshot of in-progress answers.

    Snapshots written by older clients may carry checkbox answers as JSON
    arrays, so ``answer_text`` is read as either shape.

    Attributes:
        id: Snapshot identifier assigned by the backend
        assessment: Assessment identifier
        respondent_email: Email the snapshot is keyed by
        answers: Saved answers
        updated_at: Last write time if reported
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    assessment: int
    respondent_email: str
    answers: list["SavedAnswer"] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    def has_answers(self) -> bool:
        """Whether the snapshot holds at least one non-blank answer."""
        for answer in self.answers:
            if isinstance(answer.answer_text, list):
                if answer.answer_text:
                    return True
            elif answer.answer_text not in (None, ""):
                return True
        return False


class SavedAnswer(BaseModel):
    """Answer read back from a stored snapshot or response."""
    model_config = ConfigDict(extra="ignore")

    question: int
    answer_text: Union[list[str], str, None] = None

    @field_validator("answer_text", mode="before")
    @classmethod
    def numbers_as_text(cls, v):
        """Scale answers may come back as bare numbers."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


PartialResponse.model_rebuild()


class ResponseRecord(BaseModel):
    """A submitted response as listed by ``responses/list/``."""
    model_config = ConfigDict(extra="ignore")

    id: int
    assessment: Optional[int] = None
    respondent_email: str = ""
    submitted_at: Optional[datetime] = None
    answers: list[SavedAnswer] = Field(default_factory=list)


class AssessmentStats(BaseModel):
    """Aggregate statistics for one assessment.

    Attributes:
        total_responses: Number of submitted responses
        completion_rate: Share of started sessions that were submitted
        avg_time_spent: Average time spent, when the backend reports it
        most_common_answers: Most frequent answers, comma-joined
    """
    total_responses: int = 0
    completion_rate: float = 0
    avg_time_spent: Optional[Any] = None
    most_common_answers: str = "N/A"

    @classmethod
    def from_api(cls, data: Optional[dict]) -> "AssessmentStats":
        """Build stats from the raw stats payload, tolerating missing keys.

        Args:
            data: Body of ``GET assessments/{id}/stats/``

        Returns:
            AssessmentStats with defaults for anything not reported
        """
        data = data or {}
        metrics = data.get("response_metrics") or {}

        common = data.get("most_common_answers")
        if isinstance(common, list):
            common_text = ", ".join(str(item) for item in common)
        else:
            common_text = str(common) if common else "N/A"

        return cls(
            total_responses=metrics.get("total_responses") or 0,
            completion_rate=metrics.get("completion_rate") or 0,
            avg_time_spent=metrics.get("avg_time_spent"),
            most_common_answers=common_text,
        )
