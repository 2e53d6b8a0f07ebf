"""Form state engine for taking an assessment.

This module owns the multi-step assessment form: it partitions questions
into steps, holds one typed answer per question, computes progress,
validates required answers and assembles the submission payload.

Validation is declarative and deferred: answers are stored as given and
only checked when ``validate()`` or ``submit()`` runs. Moving between steps
is never blocked by unanswered questions.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable, Iterable, Optional

from assessment_portal.schemas.answers import (
    Answer,
    AnswerValue,
    MultiChoiceAnswer,
    ScaleAnswer,
    SingleChoiceAnswer,
    TextAnswer,
    TOKEN_SEPARATOR,
    empty_value,
    split_tokens,
)
from assessment_portal.schemas.assessment import (
    Assessment,
    Question,
    QuestionType,
    SCALE_MAX,
    SCALE_MIN,
)
from assessment_portal.schemas.responses import AnswerPayload, SavedAnswer, SubmissionPayload
from assessment_portal.services.api_client import ApiError
from assessment_portal.services.respondent import RespondentEmail
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_QUESTIONS_PER_STEP = 3
INFO_STEP_TITLE = "Your Information"
REQUIRED_MESSAGE = "This question requires an answer"


class FormEngineError(Exception):
    """Raised when the form is driven with input it cannot hold."""
    pass


class SessionClosedError(FormEngineError):
    """Raised when a submitted session is mutated or submitted again."""
    pass


class FormValidationError(Exception):
    """Raised by submit when required answers or the email are missing.

    Attributes:
        question_errors: Error message per question id
        email_error: Error message for the respondent email, if any
    """

    def __init__(self, question_errors: dict[int, str], email_error: Optional[str] = None):
        self.question_errors = question_errors
        self.email_error = email_error
        count = len(question_errors) + (1 if email_error else 0)
        super().__init__(f"{count} field(s) need attention before submitting")

    def as_field_errors(self) -> dict[str, str]:
        """Flatten into ``{"email": ..., "<question id>": ...}``."""
        errors = {str(qid): message for qid, message in self.question_errors.items()}
        if self.email_error:
            errors["email"] = self.email_error
        return errors


class SubmissionError(Exception):
    """Raised when the backend rejects or never receives a submission.

    The session stays mutable so the respondent can retry.
    """

    def __init__(self, detail: str, field_errors: Optional[dict[str, str]] = None):
        super().__init__(detail)
        self.detail = detail
        self.field_errors = field_errors or {}


@dataclass(frozen=True)
class Step:
    """A page of the assessment form.

    Attributes:
        index: Position of the step (0 is the respondent info step)
        title: Step heading
        questions: Questions shown on this step
        first_question_index: Assessment position of ``questions[0]``
    """
    index: int
    title: str
    questions: tuple[Question, ...] = ()
    first_question_index: int = 0

    @property
    def is_info(self) -> bool:
        return self.index == 0

    def question_indexes(self) -> range:
        """Assessment positions of the questions on this step."""
        return range(self.first_question_index, self.first_question_index + len(self.questions))


class EventKind(str, Enum):
    """Kinds of change a FormSession announces to its listeners."""
    ANSWER_CHANGED = "answer_changed"
    EMAIL_CHANGED = "email_changed"
    STEP_CHANGED = "step_changed"
    HYDRATED = "hydrated"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class SessionEvent:
    """A change to a FormSession.

    Attributes:
        kind: What changed
        session: Session that changed
        question_index: Affected answer position for ANSWER_CHANGED
    """
    kind: EventKind
    session: "FormSession"
    question_index: Optional[int] = None

    @property
    def mutates_answers(self) -> bool:
        """Whether the event changed data worth autosaving."""
        return self.kind in (EventKind.ANSWER_CHANGED, EventKind.EMAIL_CHANGED, EventKind.HYDRATED)


SessionListener = Callable[[SessionEvent], None]


class FormStateEngine:
    """Pure operations over assessments and answer lists.

    FormSession is built on these; they are exposed separately so the
    rules can be used without session state.
    """

    @staticmethod
    def initialize(
        assessment: Assessment,
        saved_answers: Optional[Iterable[SavedAnswer]] = None,
    ) -> list[Answer]:
        """Build one blank answer per question, overlaying saved answers.

        Saved answers are matched by question id; ones for questions that
        are not part of the assessment are ignored. A comma-joined string
        saved for a checkbox question becomes its token list again.

        Args:
            assessment: Assessment being taken
            saved_answers: Answers from a stored snapshot

        Returns:
            Answers aligned with ``assessment.questions``

        Example:
            >>> answers = FormStateEngine.initialize(assessment, [SavedAnswer(question=7, answer_text="a,b")])
            >>> answers[0].value.values
            ['a', 'b']
        """
        answers = [
            Answer(question=question.id, value=empty_value(question.question_type))
            for question in assessment.questions
        ]

        for saved in saved_answers or []:
            index = assessment.question_index(saved.question)
            if index is None:
                logger.debug(f"Ignoring saved answer for unknown question {saved.question}")
                continue
            question = assessment.questions[index]
            answers[index] = Answer(
                question=question.id,
                value=FormStateEngine.from_saved(question, saved.answer_text),
            )

        return answers

    @staticmethod
    @lru_cache(maxsize=64)
    def partition(
        assessment: Assessment,
        questions_per_step: int = DEFAULT_QUESTIONS_PER_STEP,
    ) -> tuple[Step, ...]:
        """Split an assessment into form steps.

        Step 0 collects the respondent email; the remaining steps hold
        consecutive slices of at most ``questions_per_step`` questions in
        assessment order. Results are memoized, so the same assessment
        always yields the same tuple.

        Args:
            assessment: Assessment to partition
            questions_per_step: Maximum questions per step

        Returns:
            Ordered steps

        Raises:
            FormEngineError: If questions_per_step is not positive
        """
        if questions_per_step < 1:
            raise FormEngineError("questions_per_step must be at least 1")

        steps = [Step(index=0, title=INFO_STEP_TITLE)]
        questions = assessment.questions
        for start in range(0, len(questions), questions_per_step):
            section = len(steps)
            steps.append(Step(
                index=section,
                title=f"Section {section}",
                questions=questions[start:start + questions_per_step],
                first_question_index=start,
            ))
        return tuple(steps)

    @staticmethod
    def from_saved(question: Question, raw: Any) -> AnswerValue:
        """Leniently convert a stored ``answer_text`` into a typed value.

        Stored data is never rejected: anything that does not fit the
        question type becomes the blank value.
        """
        if isinstance(raw, (list, tuple)):
            tokens = [str(token) for token in raw if token not in (None, "")]
        elif raw is None:
            tokens = []
        else:
            tokens = split_tokens(str(raw))

        qtype = question.question_type
        if qtype == QuestionType.CHECKBOX:
            return MultiChoiceAnswer(values=tokens)

        text = raw if isinstance(raw, str) else TOKEN_SEPARATOR.join(tokens)
        if qtype == QuestionType.MULTIPLE_CHOICE:
            return SingleChoiceAnswer(value=text or None)
        if qtype == QuestionType.SCALE:
            try:
                point = int(text)
            except ValueError:
                point = None
            if point is None or not SCALE_MIN <= point <= SCALE_MAX:
                if text:
                    logger.warning(f"Discarding saved scale answer {text!r} for question {question.id}")
                return ScaleAnswer()
            return ScaleAnswer(value=point)
        return TextAnswer(value=text)

    @staticmethod
    def coerce(question: Question, raw: Any) -> AnswerValue:
        """Convert user input into the answer variant for a question.

        Args:
            question: Question being answered
            raw: A matching AnswerValue, or plain input (str for text and
                multiple_choice, token list for checkbox, int or digit
                string for scale; None or "" clears)

        Returns:
            Typed answer value

        Raises:
            FormEngineError: If the input does not fit the question type
        """
        blank = empty_value(question.question_type)
        if isinstance(raw, (TextAnswer, SingleChoiceAnswer, MultiChoiceAnswer, ScaleAnswer)):
            if raw.kind != blank.kind:
                raise FormEngineError(
                    f"Question {question.id} expects a {blank.kind} answer, got {raw.kind}"
                )
            return raw

        qtype = question.question_type
        if qtype == QuestionType.CHECKBOX:
            if raw is None:
                return MultiChoiceAnswer()
            if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
                raise FormEngineError(f"Question {question.id} expects a list of choices")
            tokens: list[str] = []
            for token in raw:
                if not isinstance(token, str):
                    raise FormEngineError(f"Choice tokens must be strings, got {token!r}")
                if token and token not in tokens:
                    tokens.append(token)
            return MultiChoiceAnswer(values=tokens)

        if qtype == QuestionType.SCALE:
            if raw is None or raw == "":
                return ScaleAnswer()
            if isinstance(raw, bool):
                raise FormEngineError(f"Question {question.id} expects a scale point")
            try:
                point = int(raw)
            except (TypeError, ValueError):
                raise FormEngineError(f"Question {question.id} expects a scale point, got {raw!r}")
            if not SCALE_MIN <= point <= SCALE_MAX:
                raise FormEngineError(
                    f"Scale answers must be between {SCALE_MIN} and {SCALE_MAX}, got {point}"
                )
            return ScaleAnswer(value=point)

        if raw is None:
            return blank
        if not isinstance(raw, str):
            raise FormEngineError(f"Question {question.id} expects text, got {type(raw).__name__}")
        if qtype == QuestionType.MULTIPLE_CHOICE:
            return SingleChoiceAnswer(value=raw or None)
        return TextAnswer(value=raw)

    @staticmethod
    def validate(assessment: Assessment, answers: Iterable[Answer]) -> dict[int, str]:
        """Check required questions.

        A required checkbox question needs at least one token; any other
        required question needs a non-blank value. Optional questions
        always pass.

        Returns:
            Error message per question id; empty when valid
        """
        errors: dict[int, str] = {}
        for answer in answers:
            question = assessment.get_question(answer.question)
            if question is None or not question.required:
                continue
            if answer.is_empty():
                errors[question.id] = REQUIRED_MESSAGE
        return errors

    @staticmethod
    def compute_progress(answers: Iterable[Answer], total: Optional[int] = None) -> int:
        """Percentage of questions with a non-empty answer.

        Rounds half up to the nearest integer. An assessment without
        questions reports 0.

        Args:
            answers: Current answers
            total: Question count (defaults to the number of answers)
        """
        answers = list(answers)
        total = len(answers) if total is None else total
        if total <= 0:
            return 0
        answered = sum(1 for answer in answers if not answer.is_empty())
        return (answered * 200 + total) // (2 * total)

    @staticmethod
    def build_submission_payload(
        assessment_id: int,
        email: str,
        answers: Iterable[Answer],
    ) -> SubmissionPayload:
        """Flatten answers into the ``POST /responses/`` body.

        Checkbox tokens are comma-joined, scale points rendered as text,
        everything else passes through.
        """
        return SubmissionPayload(
            assessment=assessment_id,
            respondent_email=email,
            answers=[
                AnswerPayload(question=answer.question, answer_text=answer.to_answer_text())
                for answer in answers
            ],
        )


class FormSession:
    """Runtime state of one respondent taking one assessment.

    The session announces every change as a SessionEvent to subscribed
    listeners (autosave, partial-response lookup, progress displays).
    After a successful submit the session is terminal and rejects further
    mutation.

    Usage:
        session = FormSession(assessment)
        session.set_email("ana@acme.io")
        session.set_answer(0, "Our team is small")
        session.advance()
        await session.submit(send)
    """

    def __init__(
        self,
        assessment: Assessment,
        email: str = "",
        saved_answers: Optional[Iterable[SavedAnswer]] = None,
        questions_per_step: int = DEFAULT_QUESTIONS_PER_STEP,
    ):
        """Create a session seeded with blank or saved answers.

        Args:
            assessment: Assessment being taken
            email: Initial respondent email
            saved_answers: Answers of a prior snapshot to resume from
            questions_per_step: Maximum questions per step
        """
        self.assessment = assessment
        self.questions_per_step = questions_per_step
        self.steps = FormStateEngine.partition(assessment, questions_per_step)
        self._email = RespondentEmail.normalize(email)
        self._answers = FormStateEngine.initialize(assessment, saved_answers)
        self._current_step = 0
        self._submitting = False
        self._submitted = False
        self._listeners: list[SessionListener] = []

    # State

    @property
    def email(self) -> str:
        return self._email

    @property
    def answers(self) -> tuple[Answer, ...]:
        return tuple(self._answers)

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def step(self) -> Step:
        return self.steps[self._current_step]

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def is_first_step(self) -> bool:
        return self._current_step == 0

    @property
    def is_last_step(self) -> bool:
        return self._current_step == len(self.steps) - 1

    @property
    def progress(self) -> int:
        """Percentage of answered questions, derived on every read."""
        return FormStateEngine.compute_progress(self._answers, len(self.assessment.questions))

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def is_submitted(self) -> bool:
        return self._submitted

    def answer_for(self, question_id: int) -> Optional[Answer]:
        """Answer to a question by id."""
        index = self.assessment.question_index(question_id)
        return None if index is None else self._answers[index]

    # Mutation

    def set_email(self, email: str) -> None:
        """Set the respondent email (validated only on submit)."""
        self._ensure_open()
        normalized = RespondentEmail.normalize(email)
        if normalized == self._email:
            return
        self._email = normalized
        self._emit(EventKind.EMAIL_CHANGED)

    def set_answer(self, question_index: int, value: Any) -> Answer:
        """Store the answer at a question position.

        No required-answer validation happens here.

        Args:
            question_index: Position of the question in the assessment
            value: Raw input or typed value (see FormStateEngine.coerce)

        Returns:
            The stored answer

        Raises:
            FormEngineError: If the index is out of range or the value does
                not fit the question type
            SessionClosedError: If the session was already submitted
        """
        self._ensure_open()
        if not 0 <= question_index < len(self._answers):
            raise FormEngineError(
                f"Question index {question_index} out of range (0-{len(self._answers) - 1})"
            )
        question = self.assessment.questions[question_index]
        answer = Answer(question=question.id, value=FormStateEngine.coerce(question, value))
        self._answers[question_index] = answer
        self._emit(EventKind.ANSWER_CHANGED, question_index)
        return answer

    def hydrate(self, saved_answers: Iterable[SavedAnswer]) -> None:
        """Replace all answers with those of a saved snapshot."""
        self._ensure_open()
        self._answers = FormStateEngine.initialize(self.assessment, saved_answers)
        logger.debug(f"Session hydrated for assessment {self.assessment.id}")
        self._emit(EventKind.HYDRATED)

    # Navigation

    def advance(self) -> int:
        """Move to the next step (stays on the last one)."""
        return self.go_to_step(self._current_step + 1)

    def retreat(self) -> int:
        """Move to the previous step (stays on the first one)."""
        return self.go_to_step(self._current_step - 1)

    def go_to_step(self, index: int) -> int:
        """Jump to a step, clamped to the valid range.

        Returns:
            The step index now current
        """
        clamped = max(0, min(index, len(self.steps) - 1))
        if clamped != self._current_step:
            self._current_step = clamped
            self._emit(EventKind.STEP_CHANGED)
        return self._current_step

    # Validation and submission

    def validate(self) -> dict[int, str]:
        """Required-answer errors keyed by question id."""
        return FormStateEngine.validate(self.assessment, self._answers)

    def validate_email(self) -> Optional[str]:
        """Error for the respondent email, or None when it is usable."""
        return RespondentEmail.validation_error(self._email)

    def build_submission_payload(self) -> SubmissionPayload:
        """Flatten the current answers without validating them."""
        return FormStateEngine.build_submission_payload(
            self.assessment.id, self._email, self._answers
        )

    async def submit(self, send: Callable[[SubmissionPayload], Awaitable[Any]]) -> Any:
        """Validate and send the response.

        Submission is all-or-nothing: nothing is sent unless every required
        answer and the email are valid, and a failed send leaves the
        session untouched for a retry.

        Args:
            send: Coroutine function delivering the payload to the API

        Returns:
            Whatever ``send`` returned

        Raises:
            FormValidationError: If validation fails (send is not called)
            SubmissionError: If the API rejected or never got the payload
            SessionClosedError: If the session was already submitted
            FormEngineError: If a submission is already in flight
        """
        self._ensure_open()
        if self._submitting:
            raise FormEngineError("A submission is already in progress")

        question_errors = self.validate()
        email_error = self.validate_email()
        if question_errors or email_error:
            logger.info(
                f"Submission blocked for assessment {self.assessment.id}: "
                f"{len(question_errors)} unanswered required question(s)"
                + (", invalid email" if email_error else "")
            )
            raise FormValidationError(question_errors, email_error)

        payload = self.build_submission_payload()
        self._submitting = True
        try:
            result = await send(payload)
        except ApiError as e:
            logger.warning(f"Submission failed for assessment {self.assessment.id}: {e.detail}")
            raise SubmissionError(f"Submission failed: {e.detail}", e.field_errors) from e
        finally:
            self._submitting = False

        self._submitted = True
        logger.info(
            f"Response submitted for assessment {self.assessment.id}",
            extra={"respondent": RespondentEmail.mask(self._email)},
        )
        self._emit(EventKind.SUBMITTED)
        return result

    # Observers

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback for SessionEvents.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: EventKind, question_index: Optional[int] = None) -> None:
        event = SessionEvent(kind=kind, session=self, question_index=question_index)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Session listener failed on {kind.value}: {e}", exc_info=True)

    def _ensure_open(self) -> None:
        if self._submitted:
            raise SessionClosedError("This assessment has already been submitted")
