"""Pydantic schemas for assessment definitions returned by the API.

Assessments are read-only on the respondent side, so these models are
frozen. Frozen models are hashable, which lets the form engine memoize
step partitions per assessment.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionType(str, Enum):
    """Valid question types in assessment definitions."""
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOX = "checkbox"
    SCALE = "scale"


# Scale questions are answered on a fixed 1-5 agreement scale
SCALE_MIN = 1
SCALE_MAX = 5
SCALE_LABELS = {
    1: "Strongly Disagree",
    2: "Disagree",
    3: "Neutral",
    4: "Agree",
    5: "Strongly Agree",
}


class Choice(BaseModel):
    """A single selectable option of a multiple_choice or checkbox question.

    Attributes:
        id: Choice identifier (absent for drafts not yet saved)
        choice_text: Text shown to the respondent
        value: Token stored as the answer when selected
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[int] = Field(None, description="Choice identifier")
    choice_text: str = Field(..., description="Display text for choice")
    value: str = Field(..., min_length=1, description="Stored answer token")


class Question(BaseModel):
    """A single question of an assessment.

    Attributes:
        id: Question identifier
        question_text: Prompt shown to the respondent
        question_type: Answer type (text/multiple_choice/checkbox/scale)
        required: Whether an answer is mandatory on submit
        choices: Ordered options (empty for text and scale questions)
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., description="Question identifier")
    question_text: str = Field(..., description="Question prompt")
    question_type: QuestionType = Field(QuestionType.TEXT, description="Question type")
    required: bool = Field(False, description="Answer required on submit")
    choices: tuple[Choice, ...] = Field(default_factory=tuple, description="Ordered choices")

    @property
    def is_checkbox(self) -> bool:
        """Whether the question collects a set of tokens."""
        return self.question_type == QuestionType.CHECKBOX

    def choice_values(self) -> list[str]:
        """Return the answer tokens offered by this question."""
        return [choice.value for choice in self.choices]


class Assessment(BaseModel):
    """Complete assessment definition.

    Attributes:
        id: Assessment identifier
        title: Human-readable title
        description: Introductory text
        time_limit_minutes: Optional time limit; 0 or null means untimed
        is_active: Whether respondents may currently take it
        questions: Ordered questions
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    title: str
    description: str = ""
    time_limit_minutes: Optional[int] = Field(None, ge=0)
    is_active: bool = True
    questions: tuple[Question, ...] = Field(default_factory=tuple)

    @field_validator("description", mode="before")
    @classmethod
    def description_not_null(cls, v):
        """Treat a null description as empty text."""
        return v or ""

    @model_validator(mode="after")
    def validate_question_ids(self):
        """Ensure question ids are unique within the assessment."""
        ids = [question.id for question in self.questions]
        if len(ids) != len(set(ids)):
            duplicates = sorted({qid for qid in ids if ids.count(qid) > 1})
            raise ValueError(f"Duplicate question IDs found: {duplicates}")
        return self

    @property
    def time_limit_seconds(self) -> Optional[int]:
        """Time limit in seconds, or None when the assessment is untimed."""
        if not self.time_limit_minutes:
            return None
        return self.time_limit_minutes * 60

    def get_question(self, question_id: int) -> Optional[Question]:
        """Get question by ID.

        Args:
            question_id: Question identifier

        Returns:
            Question if found, None otherwise
        """
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def question_index(self, question_id: int) -> Optional[int]:
        """Position of a question in the assessment, or None if absent."""
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                return index
        return None


class AssessmentSummary(BaseModel):
    """Assessment listing entry (questions are not always included)."""
    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    description: Optional[str] = None
    time_limit_minutes: Optional[int] = None
    is_active: bool = True
