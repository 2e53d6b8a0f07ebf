"""Pydantic schemas for the admin console's editable drafts and tables."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from assessment_portal.schemas.assessment import QuestionType


class ChoiceDraft(BaseModel):
    """Choice being created or edited."""
    id: Optional[int] = None
    choice_text: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)


class QuestionDraft(BaseModel):
    """Question being created or edited.

    Attributes:
        id: Existing question id; None creates a new question
        question_text: Prompt
        question_type: Answer type
        required: Whether an answer is mandatory
        choices: Options for multiple_choice and checkbox questions
    """
    id: Optional[int] = None
    question_text: str = Field(..., min_length=1)
    question_type: QuestionType = QuestionType.TEXT
    required: bool = True
    choices: list[ChoiceDraft] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_choices(self):
        """Choice questions need options; text and scale questions take none."""
        if self.question_type in (QuestionType.MULTIPLE_CHOICE, QuestionType.CHECKBOX):
            if not self.choices:
                raise ValueError(
                    f"{self.question_type.value} questions need at least one choice"
                )
        elif self.choices:
            raise ValueError(f"{self.question_type.value} questions cannot have choices")
        return self

    def question_fields(self) -> dict:
        """Fields sent to the question endpoints (choices go separately)."""
        return self.model_dump(include={"question_text", "question_type", "required"}, mode="json")


class AssessmentDraft(BaseModel):
    """Assessment being created or edited."""
    title: str = Field(..., min_length=1)
    description: str = ""
    time_limit_minutes: int = Field(0, ge=0)
    is_active: bool = True


class ResultsRow(BaseModel):
    """One submitted response in the results table."""
    response_id: int
    respondent_email: str
    submitted_at: Optional[str] = None
    answers: dict[int, str] = Field(default_factory=dict)


class ResultsTable(BaseModel):
    """Submitted responses laid out with one column per question."""
    columns: dict[int, str] = Field(default_factory=dict)
    rows: list[ResultsRow] = Field(default_factory=list)
