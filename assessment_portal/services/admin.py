"""Admin console service.

Wraps the admin endpoints for managing assessments, questions, choices
and users, and shapes statistics and submitted responses for display.
All calls require an admin session; the API enforces this and answers
403 otherwise.
"""

from typing import Any, Iterable, Optional

from assessment_portal.schemas.admin import (
    AssessmentDraft,
    QuestionDraft,
    ResultsRow,
    ResultsTable,
)
from assessment_portal.schemas.assessment import AssessmentSummary, Question
from assessment_portal.schemas.auth import UserProfile, UserUpdate
from assessment_portal.schemas.responses import AssessmentStats, ResponseRecord
from assessment_portal.services.api_client import ApiClient, as_list
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


class AdminService:
    """Admin operations against the assessment API."""

    def __init__(self, api: ApiClient):
        self.api = api

    # Assessments

    def list_assessments(self) -> list[AssessmentSummary]:
        data = self.api.request("GET", "admin/assessments/")
        return [AssessmentSummary.model_validate(item) for item in as_list(data)]

    def create_assessment(self, draft: AssessmentDraft) -> AssessmentSummary:
        data = self.api.request("POST", "admin/assessments/", json=draft.model_dump())
        created = AssessmentSummary.model_validate(data)
        logger.info(f"Created assessment {created.id}")
        return created

    def update_assessment(self, assessment_id: int, draft: AssessmentDraft) -> AssessmentSummary:
        data = self.api.request("PUT", f"admin/assessments/{assessment_id}/", json=draft.model_dump())
        logger.info(f"Updated assessment {assessment_id}")
        return AssessmentSummary.model_validate(data)

    def delete_assessment(self, assessment_id: int) -> None:
        self.api.request("DELETE", f"admin/assessments/{assessment_id}/")
        logger.info(f"Deleted assessment {assessment_id}")

    # Questions and choices

    def list_questions(self, assessment_id: int) -> list[Question]:
        data = self.api.request("GET", f"admin/assessments/{assessment_id}/questions/")
        return [Question.model_validate(item) for item in as_list(data)]

    def save_question(self, assessment_id: int, draft: QuestionDraft) -> int:
        """Create or update a question together with its choices.

        Existing choices (with an id) are updated, new ones created.

        Args:
            assessment_id: Assessment the question belongs to
            draft: Question and its choices

        Returns:
            Id of the saved question

        Raises:
            ApiError: If any of the calls fails; earlier calls are not undone
        """
        if draft.id is not None:
            self.api.request("PUT", f"admin/questions/{draft.id}/", json=draft.question_fields())
            question_id = draft.id
        else:
            data = self.api.request(
                "POST",
                f"admin/assessments/{assessment_id}/questions/",
                json=draft.question_fields(),
            )
            question_id = int(data["id"])

        for choice in draft.choices:
            body = choice.model_dump(include={"choice_text", "value"})
            if choice.id is not None:
                self.api.request("PUT", f"admin/choices/{choice.id}/", json=body)
            else:
                self.api.request("POST", f"admin/questions/{question_id}/choices/", json=body)

        logger.info(
            f"Saved question {question_id} with {len(draft.choices)} choice(s)",
            extra={"assessment_id": assessment_id},
        )
        return question_id

    def delete_question(self, question_id: int) -> None:
        self.api.request("DELETE", f"admin/questions/{question_id}/")

    def delete_choice(self, choice_id: int) -> None:
        self.api.request("DELETE", f"admin/choices/{choice_id}/")

    # Statistics and results

    def get_stats(self, assessment_id: int) -> AssessmentStats:
        data = self.api.request("GET", f"assessments/{assessment_id}/stats/")
        return AssessmentStats.from_api(data if isinstance(data, dict) else None)

    def list_responses(self, assessment_id: Optional[int] = None) -> list[ResponseRecord]:
        return self.api.get_responses(assessment_id)

    @staticmethod
    def build_results_table(responses: Iterable[ResponseRecord]) -> ResultsTable:
        """Lay out responses with one column per question seen.

        Columns appear in first-seen order and are labelled ``Question <id>``;
        checkbox answers stored as lists are comma-joined.
        """
        table = ResultsTable()
        for response in responses:
            row = ResultsRow(
                response_id=response.id,
                respondent_email=response.respondent_email,
                submitted_at=response.submitted_at.isoformat() if response.submitted_at else None,
            )
            for answer in response.answers:
                if answer.question not in table.columns:
                    table.columns[answer.question] = f"Question {answer.question}"
                text = answer.answer_text
                if isinstance(text, list):
                    text = ",".join(text)
                row.answers[answer.question] = text or ""
            table.rows.append(row)
        return table

    # Users

    def list_users(self, search: str = "") -> list[UserProfile]:
        params = {"search": search} if search else None
        data = self.api.request("GET", "admin/users/", params=params)
        return [UserProfile.model_validate(item) for item in as_list(data)]

    def get_user(self, user_id: int) -> UserProfile:
        return UserProfile.model_validate(self.api.request("GET", f"admin/users/{user_id}/"))

    def update_user(self, user_id: int, update: UserUpdate) -> UserProfile:
        data = self.api.request(
            "PATCH", f"admin/users/{user_id}/", json=update.model_dump(exclude_none=True)
        )
        return UserProfile.model_validate(data)

    def delete_user(self, user_id: int) -> None:
        self.api.request("DELETE", f"admin/users/{user_id}/")
        logger.info(f"Deleted user {user_id}")

    def set_admin_role(self, user_ids: list[int], is_admin: bool) -> Any:
        """Grant or revoke admin rights for several users at once."""
        if not user_ids:
            return None
        result = self.api.request(
            "POST",
            "admin/users/bulk-update/",
            json={"user_ids": user_ids, "is_admin": is_admin},
        )
        logger.info(f"Set is_admin={is_admin} for {len(user_ids)} user(s)")
        return result
