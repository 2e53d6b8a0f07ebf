"""Typed answer values for in-progress assessment sessions.

Each question type has its own answer variant so callers never have to
sniff whether an answer is a string or a list. At the API boundary every
variant is flattened to a single ``answer_text`` string.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from assessment_portal.schemas.assessment import QuestionType, SCALE_MIN, SCALE_MAX

# Separator used for checkbox tokens in answer_text
TOKEN_SEPARATOR = ","


class TextAnswer(BaseModel):
    """Free-text answer."""
    kind: Literal["text"] = "text"
    value: str = ""

    def is_empty(self) -> bool:
        return not self.value.strip()

    def to_answer_text(self) -> str:
        return self.value


class SingleChoiceAnswer(BaseModel):
    """Single token picked from a multiple_choice question."""
    kind: Literal["single_choice"] = "single_choice"
    value: Optional[str] = None

    def is_empty(self) -> bool:
        return self.value is None or self.value == ""

    def to_answer_text(self) -> str:
        return self.value or ""


class MultiChoiceAnswer(BaseModel):
    """Ordered set of tokens picked from a checkbox question."""
    kind: Literal["multi_choice"] = "multi_choice"
    values: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.values) == 0

    def to_answer_text(self) -> str:
        return TOKEN_SEPARATOR.join(self.values)


class ScaleAnswer(BaseModel):
    """Point picked on the 1-5 agreement scale."""
    kind: Literal["scale"] = "scale"
    value: Optional[int] = Field(None, ge=SCALE_MIN, le=SCALE_MAX)

    def is_empty(self) -> bool:
        return self.value is None

    def to_answer_text(self) -> str:
        return "" if self.value is None else str(self.value)


AnswerValue = Annotated[
    Union[TextAnswer, SingleChoiceAnswer, MultiChoiceAnswer, ScaleAnswer],
    Field(discriminator="kind"),
]


class Answer(BaseModel):
    """Answer to one assessment question.

    Attributes:
        question: ID of the question being answered
        value: Typed answer value matching the question type
    """
    question: int
    value: AnswerValue

    def is_empty(self) -> bool:
        """Whether the answer holds no value yet."""
        return self.value.is_empty()

    def to_answer_text(self) -> str:
        """Flatten the value into the API ``answer_text`` string."""
        return self.value.to_answer_text()


def empty_value(question_type: QuestionType) -> AnswerValue:
    """Return the blank answer variant for a question type."""
    if question_type == QuestionType.CHECKBOX:
        return MultiChoiceAnswer()
    if question_type == QuestionType.MULTIPLE_CHOICE:
        return SingleChoiceAnswer()
    if question_type == QuestionType.SCALE:
        return ScaleAnswer()
    return TextAnswer()


def split_tokens(raw: str) -> list[str]:
    """Split a comma-joined checkbox answer back into its tokens.

    Order is preserved and blank fragments are dropped, so ``""`` yields
    an empty selection rather than a single empty token.
    """
    return [token for token in raw.split(TOKEN_SEPARATOR) if token != ""]
