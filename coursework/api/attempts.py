"""Attempt endpoints.

  POST /v1/assignments/{assignmentId}/attempts     begin (timed flow)
  POST /v1/assignments/{assignmentId}/submissions  submit
  POST /v1/attempts/{attemptId}/grade              manual grading (owner)
  GET  /v1/attempts/{attemptId}                    student or owner

The routes only translate: HTTP in, AttemptLifecycle call, HTTP out.
Core errors are mapped to status codes by _to_http().
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from coursework.api.dependencies import get_lifecycle, require_user
from coursework.core.errors import (
    AlreadyFinalized,
    AssignmentNotFound,
    AssignmentNotOpen,
    AttemptNotFound,
    AttemptNotOwnedByCaller,
    CourseworkError,
    NotApprovedMember,
    NotAssignmentOwner,
    ReferentialIntegrityFailure,
)
from coursework.models.attempt import Attempt, AttemptHandle, answers_to_json
from coursework.models.principal import Principal
from coursework.services.attempt_lifecycle import AttemptLifecycle, SubmissionPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["attempts"])


# --- Request / Response schemas -------------------------------------------


class SubmissionIn(BaseModel):
    answers: dict[int, str | None] | None = None
    work_link: str | None = None
    attempt_id: UUID | None = None
    auto_save_on_closure: bool = False


class GradeIn(BaseModel):
    score: float = Field(allow_inf_nan=False)
    feedback: str | None = Field(default=None, max_length=10_000)


class AttemptOut(BaseModel):
    id: UUID
    assignment_id: UUID
    student_id: UUID
    attempt_number: int
    attempt_state: str
    submission_state: str
    started_at: datetime
    submitted_at: datetime | None
    is_late: bool
    timed_out: bool
    score: float | None
    feedback: str | None
    answers: dict | None


class QuestionOut(BaseModel):
    index: int
    text: str
    options: list[str]


class AttemptHandleOut(BaseModel):
    attempt: AttemptOut
    time_limit_minutes: int | None
    deadline: datetime | None
    resumed: bool
    attempts_used: int
    questions: list[QuestionOut]


def _attempt_out(attempt: Attempt) -> AttemptOut:
    return AttemptOut(
        id=attempt.id,
        assignment_id=attempt.assignment_id,
        student_id=attempt.student_id,
        attempt_number=attempt.attempt_number,
        attempt_state=attempt.attempt_state.value,
        submission_state=attempt.submission_state.value,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        is_late=attempt.is_late,
        timed_out=attempt.timed_out,
        score=attempt.score,
        feedback=attempt.feedback,
        answers=answers_to_json(attempt.answers),
    )


def _handle_out(handle: AttemptHandle) -> AttemptHandleOut:
    return AttemptHandleOut(
        attempt=_attempt_out(handle.attempt),
        time_limit_minutes=handle.time_limit_minutes,
        deadline=handle.deadline,
        resumed=handle.resumed,
        attempts_used=handle.attempts_used,
        questions=[
            QuestionOut(index=q.index, text=q.text, options=list(q.options))
            for q in handle.questions
        ],
    )


# --- Error mapping ---------------------------------------------------------


def _to_http(exc: CourseworkError) -> HTTPException:
    match exc:
        case AssignmentNotFound() | AttemptNotFound():
            code = status.HTTP_404_NOT_FOUND
        case (
            NotApprovedMember()
            | AttemptNotOwnedByCaller()
            | NotAssignmentOwner()
            | AssignmentNotOpen()
        ):
            code = status.HTTP_403_FORBIDDEN
        case AlreadyFinalized():
            code = status.HTTP_409_CONFLICT
        case ReferentialIntegrityFailure():
            # Details are in the server log; don't leak catalog internals.
            return HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"error": type(exc).__name__, "message": "internal error"},
            )
        case _:
            code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(
        status_code=code,
        detail={"error": type(exc).__name__, "message": exc.reason},
    )


def _caller_id(principal: Principal) -> UUID:
    try:
        return principal.user_uuid()
    except ValueError:
        logger.warning("Token subject is not a UUID: %s", principal.user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


# --- Routes ----------------------------------------------------------------


@router.post(
    "/assignments/{assignment_id}/attempts",
    response_model=AttemptHandleOut,
    status_code=status.HTTP_201_CREATED,
)
async def begin_attempt(
    assignment_id: UUID,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[AttemptLifecycle, Depends(get_lifecycle)],
) -> AttemptHandleOut:
    try:
        handle = await lifecycle.begin(assignment_id, _caller_id(principal))
    except CourseworkError as e:
        raise _to_http(e) from None
    if handle.resumed:
        response.status_code = status.HTTP_200_OK
    return _handle_out(handle)


@router.post("/assignments/{assignment_id}/submissions", response_model=AttemptOut)
async def submit_attempt(
    assignment_id: UUID,
    body: SubmissionIn,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[AttemptLifecycle, Depends(get_lifecycle)],
) -> AttemptOut:
    payload = SubmissionPayload(
        answers=body.answers,
        work_link=body.work_link,
        attempt_id=body.attempt_id,
        auto_save_on_closure=body.auto_save_on_closure,
    )
    try:
        attempt = await lifecycle.submit(assignment_id, _caller_id(principal), payload)
    except CourseworkError as e:
        raise _to_http(e) from None
    return _attempt_out(attempt)


@router.post("/attempts/{attempt_id}/grade", response_model=AttemptOut)
async def grade_attempt(
    attempt_id: UUID,
    body: GradeIn,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[AttemptLifecycle, Depends(get_lifecycle)],
) -> AttemptOut:
    try:
        attempt = await lifecycle.grade(
            attempt_id, _caller_id(principal), body.score, body.feedback
        )
    except CourseworkError as e:
        raise _to_http(e) from None
    return _attempt_out(attempt)


@router.get("/attempts/{attempt_id}", response_model=AttemptOut)
async def get_attempt(
    attempt_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[AttemptLifecycle, Depends(get_lifecycle)],
) -> AttemptOut:
    try:
        attempt = await lifecycle.get_attempt(attempt_id, _caller_id(principal))
    except CourseworkError as e:
        raise _to_http(e) from None
    return _attempt_out(attempt)
