"""Pydantic schemas describing an open assessment session to callers."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from assessment_portal.schemas.responses import AnswerPayload


class StepView(BaseModel):
    """One form step as shown to the respondent."""
    index: int
    title: str
    is_info: bool
    question_ids: list[int] = Field(default_factory=list)


class TimerView(BaseModel):
    """Countdown state for time-limited assessments."""
    remaining_seconds: int
    remaining_text: str
    fraction_remaining: float
    urgency: str
    expired: bool


class SessionView(BaseModel):
    """Snapshot of an open assessment session.

    Attributes:
        session_id: Identifier of the open session
        assessment_id: Assessment being taken
        title: Assessment title
        email: Respondent email entered so far
        current_step: Index of the visible step
        steps: All steps of the form
        progress: Percentage of answered questions
        answers: Current answers in wire form
        last_saved_at: Time of the last successful autosave
        is_saving: Whether an autosave is running
        partial_available: Whether a saved snapshot can be resumed
        timer: Countdown state, None for untimed assessments
        submitted: Whether the response has been submitted
    """
    session_id: str
    assessment_id: int
    title: str
    email: str
    current_step: int
    steps: list[StepView]
    progress: int
    answers: list[AnswerPayload]
    last_saved_at: Optional[datetime] = None
    is_saving: bool = False
    partial_available: bool = False
    timer: Optional[TimerView] = None
    submitted: bool = False


class EmailUpdate(BaseModel):
    """Body of ``PUT /sessions/{id}/email``."""
    email: str = ""


class AnswerUpdate(BaseModel):
    """Body of ``PUT /sessions/{id}/answers/{index}``.

    ``value`` is a string for text and multiple_choice questions, a list
    of tokens for checkbox questions and a number for scale questions.
    """
    value: Any = None
