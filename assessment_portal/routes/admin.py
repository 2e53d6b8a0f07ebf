"""Results and admin console endpoints.

``/results`` only needs a signed-in user; everything under ``/admin``
needs admin rights. Unauthorized visitors are redirected by the guard.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Query

from assessment_portal.dependencies import Portal
from assessment_portal.middleware.route_guard import require_admin, require_user
from assessment_portal.schemas.admin import AssessmentDraft, QuestionDraft, ResultsTable
from assessment_portal.schemas.assessment import AssessmentSummary, Question
from assessment_portal.schemas.auth import UserProfile, UserUpdate
from assessment_portal.schemas.responses import AssessmentStats
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/results", response_model=ResultsTable)
async def results(
    assessment_id: Optional[int] = Query(None),
    portal: Portal = Depends(require_user),
):
    """Submitted responses, optionally for one assessment."""
    responses = await asyncio.to_thread(portal.admin.list_responses, assessment_id)
    return portal.admin.build_results_table(responses)


@router.get("/admin/assessments", response_model=list[AssessmentSummary])
async def list_assessments(portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.list_assessments)


@router.post("/admin/assessments", response_model=AssessmentSummary, status_code=201)
async def create_assessment(draft: AssessmentDraft, portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.create_assessment, draft)


@router.put("/admin/assessments/{assessment_id}", response_model=AssessmentSummary)
async def update_assessment(
    assessment_id: int,
    draft: AssessmentDraft,
    portal: Portal = Depends(require_admin),
):
    return await asyncio.to_thread(portal.admin.update_assessment, assessment_id, draft)


@router.delete("/admin/assessments/{assessment_id}", status_code=204)
async def delete_assessment(assessment_id: int, portal: Portal = Depends(require_admin)):
    await asyncio.to_thread(portal.admin.delete_assessment, assessment_id)


@router.get("/admin/assessments/{assessment_id}/questions", response_model=list[Question])
async def list_questions(assessment_id: int, portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.list_questions, assessment_id)


@router.post("/admin/assessments/{assessment_id}/questions")
async def save_question(
    assessment_id: int,
    draft: QuestionDraft,
    portal: Portal = Depends(require_admin),
) -> dict:
    """Create or update a question together with its choices."""
    return {"id": await asyncio.to_thread(portal.admin.save_question, assessment_id, draft)}


@router.delete("/admin/questions/{question_id}", status_code=204)
async def delete_question(question_id: int, portal: Portal = Depends(require_admin)):
    await asyncio.to_thread(portal.admin.delete_question, question_id)


@router.delete("/admin/choices/{choice_id}", status_code=204)
async def delete_choice(choice_id: int, portal: Portal = Depends(require_admin)):
    await asyncio.to_thread(portal.admin.delete_choice, choice_id)


@router.get("/admin/assessments/{assessment_id}/stats", response_model=AssessmentStats)
async def assessment_stats(assessment_id: int, portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.get_stats, assessment_id)


@router.get("/admin/users", response_model=list[UserProfile])
async def list_users(search: str = "", portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.list_users, search)


@router.patch("/admin/users/{user_id}", response_model=UserProfile)
async def update_user(user_id: int, update: UserUpdate, portal: Portal = Depends(require_admin)):
    return await asyncio.to_thread(portal.admin.update_user, user_id, update)


@router.delete("/admin/users/{user_id}", status_code=204)
async def delete_user(user_id: int, portal: Portal = Depends(require_admin)):
    await asyncio.to_thread(portal.admin.delete_user, user_id)


@router.post("/admin/users/roles")
async def set_admin_role(
    user_ids: list[int],
    is_admin: bool = Query(...),
    portal: Portal = Depends(require_admin),
) -> dict:
    """Grant or revoke admin rights for several users."""
    await asyncio.to_thread(portal.admin.set_admin_role, user_ids, is_admin)
    return {"updated": len(user_ids), "is_admin": is_admin}
