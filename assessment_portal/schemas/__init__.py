"""Pydantic schemas for data validation.

This package contains all Pydantic models for assessment definitions,
answers, API payloads, authentication,
admin drafts and session views.
"""

from assessment_portal.schemas.assessment import (
    QuestionType,
    Choice,
    Question,
    Assessment,
    AssessmentSummary,
)
from assessment_portal.schemas.answers import (
    TextAnswer,
    SingleChoiceAnswer,
    MultiChoiceAnswer,
    ScaleAnswer,
    Answer,
)
from assessment_portal.schemas.responses import (
    AnswerPayload,
    SubmissionPayload,
    PartialResponse,
    SavedAnswer,
    ResponseRecord,
    AssessmentStats,
)
from assessment_portal.schemas.auth import (
    Credentials,
    TokenPair,
    UserProfile,
    AuthenticatedUser,
    LoginResult,
    UserUpdate,
    Registration,
)
from assessment_portal.schemas.admin import (
    ChoiceDraft,
    QuestionDraft,
    AssessmentDraft,
    ResultsRow,
    ResultsTable,
)
from assessment_portal.schemas.session import (
    StepView,
    TimerView,
    SessionView,
    EmailUpdate,
    AnswerUpdate,
)

__all__ = [
    "QuestionType",
    "Choice",
    "Question",
    "Assessment",
    "AssessmentSummary",
    "TextAnswer",
    "SingleChoiceAnswer",
    "MultiChoiceAnswer",
    "ScaleAnswer",
    "Answer",
    "AnswerPayload",
    "SubmissionPayload",
    "PartialResponse",
    "SavedAnswer",
    "ResponseRecord",
    "AssessmentStats",
    "Credentials",
    "TokenPair",
    "UserProfile",
    "AuthenticatedUser",
    "LoginResult",
    "UserUpdate",
    "Registration",
    "ChoiceDraft",
    "QuestionDraft",
    "AssessmentDraft",
    "ResultsRow",
    "ResultsTable",
    "StepView",
    "TimerView",
    "SessionView",
    "EmailUpdate",
    "AnswerUpdate",
]
