"""Endpoints for taking an assessment.

A respondent opens a session for an assessment and then drives it step
by step. Each open session is an AssessmentRunner kept in the portal's
registry; every mutating call returns the updated SessionView.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from assessment_portal.dependencies import Portal, get_portal
from assessment_portal.schemas.assessment import AssessmentSummary
from assessment_portal.schemas.session import AnswerUpdate, EmailUpdate, SessionView
from assessment_portal.services.assessment_runner import AssessmentRunner
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def get_runner(session_id: str, portal: Portal = Depends(get_portal)) -> AssessmentRunner:
    """Look up an open session or answer 404.

    Idle sessions are closed first, so an abandoned session id answers 404.
    """
    await portal.registry.expire_idle()
    runner = portal.registry.get(session_id)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return runner


@router.get("/assessments", response_model=list[AssessmentSummary])
async def list_assessments(portal: Portal = Depends(get_portal)):
    """Assessments currently open to respondents."""
    return await portal.fetcher.list_active()


@router.post("/assessments/{assessment_id}/sessions", response_model=SessionView, status_code=201)
async def open_session(
    assessment_id: int,
    body: Optional[EmailUpdate] = None,
    portal: Portal = Depends(get_portal),
):
    """Load an assessment and start a session for it."""
    runner = AssessmentRunner(portal.api, fetcher=portal.fetcher, settings=portal.settings)
    await runner.open(assessment_id, email=body.email if body else "")
    await portal.registry.expire_idle()
    portal.registry.add(runner)
    return runner.view()


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(runner: AssessmentRunner = Depends(get_runner)):
    return runner.view()


@router.put("/sessions/{session_id}/email", response_model=SessionView)
async def set_email(body: EmailUpdate, runner: AssessmentRunner = Depends(get_runner)):
    runner.set_email(body.email)
    return runner.view()


@router.put("/sessions/{session_id}/answers/{question_index}", response_model=SessionView)
async def set_answer(
    question_index: int,
    body: AnswerUpdate,
    runner: AssessmentRunner = Depends(get_runner),
):
    runner.set_answer(question_index, body.value)
    return runner.view()


@router.post("/sessions/{session_id}/next", response_model=SessionView)
async def next_step(runner: AssessmentRunner = Depends(get_runner)):
    runner.advance()
    return runner.view()


@router.post("/sessions/{session_id}/previous", response_model=SessionView)
async def previous_step(runner: AssessmentRunner = Depends(get_runner)):
    runner.retreat()
    return runner.view()


@router.post("/sessions/{session_id}/steps/{step_index}", response_model=SessionView)
async def go_to_step(step_index: int, runner: AssessmentRunner = Depends(get_runner)):
    runner.go_to_step(step_index)
    return runner.view()


@router.post("/sessions/{session_id}/resume", response_model=SessionView)
async def resume(runner: AssessmentRunner = Depends(get_runner)):
    """Load the saved progress found for the respondent's email."""
    if not runner.resume():
        raise HTTPException(status_code=404, detail="No saved progress to resume")
    return runner.view()


@router.post("/sessions/{session_id}/submit", response_model=SessionView)
async def submit(
    runner: AssessmentRunner = Depends(get_runner),
    portal: Portal = Depends(get_portal),
):
    """Validate and submit the response.

    Validation failures answer 422 with per-field errors; the session
    stays open so the respondent can fix them. A submitted session is
    discarded; the returned view is its final state.
    """
    await runner.submit()
    view = runner.view()
    await portal.registry.discard(runner.session_id)
    return view


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, portal: Portal = Depends(get_portal)):
    if not await portal.registry.discard(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
