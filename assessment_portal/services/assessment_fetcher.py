"""Assessment fetcher: loads assessment definitions off the event loop."""

import asyncio
from typing import Optional

from pydantic import ValidationError

from assessment_portal.schemas.assessment import Assessment, AssessmentSummary
from assessment_portal.services.api_client import ApiClient, ApiError
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


class AssessmentLoadError(Exception):
    """Raised when an assessment cannot be loaded or is malformed.

    Attributes:
        status_code: HTTP status of the failed request, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssessmentFetcher:
    """Loads assessments (questions and choices included) by id."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def fetch(self, assessment_id: int) -> Assessment:
        """Load one assessment.

        Args:
            assessment_id: Assessment identifier

        Returns:
            Validated Assessment

        Raises:
            AssessmentLoadError: If the request fails or the payload is invalid
        """
        try:
            assessment = await asyncio.to_thread(self.api.get_assessment, assessment_id)
        except ApiError as e:
            logger.error(f"Error fetching assessment {assessment_id}: {e.detail}")
            raise AssessmentLoadError(
                f"Failed to load assessment: {e.detail}", status_code=e.status_code
            ) from e
        except ValidationError as e:
            logger.error(f"Assessment {assessment_id} failed validation: {e}")
            raise AssessmentLoadError(f"Failed to load assessment: invalid definition ({e})") from e

        logger.info(
            f"Loaded assessment {assessment.id} with {len(assessment.questions)} questions",
            extra={"assessment_id": assessment.id},
        )
        return assessment

    async def list_active(self) -> list[AssessmentSummary]:
        """List assessments respondents can currently take.

        Raises:
            ApiError: If the listing request fails
        """
        summaries = await asyncio.to_thread(self.api.get_assessments)
        return [summary for summary in summaries if summary.is_active]
