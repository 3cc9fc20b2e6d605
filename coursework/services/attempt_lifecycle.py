"""Attempt lifecycle: begin, submit and manual grading.

Two flows share one state machine:

  Timed flow (Quiz / OpenQuestionnaire with a time limit)
      begin() creates the InProgress attempt and starts the clock;
      submit() later moves it to a terminal state.

  Untimed flow (everything else)
      submit() creates the attempt and finalizes it in the same call.

    InProgress ──submit──> CompletedByUser
               ──submit──> CompletedByTimeout    (own time limit passed)
               ──submit──> AutoSavedOnClosure    (assignment closed)

Terminal states never change again.  Manual grading only touches the
score side (score, feedback, submission_state), never attempt_state.

Racing the deadline sweeper
---------------------------
The sweeper closes assignments without touching attempts.  submit()
always re-reads the assignment, so an attempt begun while the
assignment was Open and submitted after it closed is recorded as
AutoSavedOnClosure, whatever the caller asked for.  The status read is
the linearization point: a close that lands after it is ordered after
the submission.  Two submits racing on the same attempt serialize in
AttemptStore.save(); the loser sees AlreadyFinalized.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import assert_never
from uuid import UUID

from coursework.core.clock import Clock, system_clock
from coursework.core.errors import (
    ActivityFlowMismatch,
    ActivityNotResolvable,
    AlreadyFinalized,
    AssignmentNotFound,
    AssignmentNotOpen,
    AttemptNotFound,
    AttemptNotOwnedByCaller,
    AttemptsExhausted,
    AttemptStillInProgress,
    DuplicateAttemptError,
    MissingRequiredPayload,
    NotApprovedMember,
    NotAssignmentOwner,
    PolicyViolation,
    StaleAttemptError,
)
from coursework.core.metrics import (
    ATTEMPTS_FINALIZED,
    ATTEMPTS_STARTED,
    POLICY_REJECTIONS,
)
from coursework.models.activity import ActivityDefinition, ActivityKind
from coursework.models.assignment import AssignmentRecord, AssignmentStatus
from coursework.models.attempt import (
    AnswerRecord,
    Attempt,
    AttemptAnswers,
    AttemptHandle,
    AttemptState,
    QuestionnaireAnswers,
    QuestionView,
    QuizAnswers,
    SubmissionState,
    WorkSubmission,
)
from coursework.models.notification import NotificationKind
from coursework.repos.access_gate import AccessGate
from coursework.repos.assignment_repo import AssignmentCatalog
from coursework.repos.attempt_repo import AttemptStore
from coursework.services.notifications import NotificationPort
from coursework.services.scoring import score_quiz, validate_manual_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmissionPayload:
    """What the student sends to submit().

    answers:              question index -> answer text (Quiz, OpenQuestionnaire)
    work_link:            link to the submitted work (FreeformSubmission)
    attempt_id:           the InProgress attempt being finished, if known
    auto_save_on_closure: the client knows the assignment closed and is
                          saving whatever the student had so far
    """

    answers: Mapping[int, str | None] | None = None
    work_link: str | None = None
    attempt_id: UUID | None = None
    auto_save_on_closure: bool = False


@contextmanager
def _policy_rejections(operation: str, **context: str) -> Iterator[None]:
    try:
        yield
    except PolicyViolation as e:
        POLICY_REJECTIONS.labels(reason=type(e).__name__).inc()
        logger.warning("%s rejected: %s", operation, e.reason, extra=context)
        raise


class AttemptLifecycle:
    def __init__(
        self,
        *,
        attempts: AttemptStore,
        catalog: AssignmentCatalog,
        access: AccessGate,
        notifier: NotificationPort,
        clock: Clock = system_clock,
    ) -> None:
        self._attempts = attempts
        self._catalog = catalog
        self._access = access
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------
    # begin
    # ------------------------------------------------------------------

    async def begin(self, assignment_id: UUID, student_id: UUID) -> AttemptHandle:
        """Start (or resume) the caller's timed attempt."""
        with _policy_rejections(
            "begin", assignment_id=str(assignment_id), student_id=str(student_id)
        ):
            return await self._begin(assignment_id, student_id)

    async def _begin(self, assignment_id: UUID, student_id: UUID) -> AttemptHandle:
        assignment = await self._load_assignment(assignment_id)
        if assignment.status is not AssignmentStatus.OPEN:
            raise AssignmentNotOpen(assignment.id, assignment.status)
        if not assignment.uses_timed_flow:
            raise ActivityFlowMismatch(
                "this activity is submitted in one step; there is no attempt to start"
            )
        await self._require_member(student_id, assignment.group_id)
        activity = await self._load_activity(assignment)

        completed = await self._attempts.count_terminal(assignment.id, student_id)
        existing = await self._attempts.find_in_progress(assignment.id, student_id)
        if existing is not None:
            logger.info(
                "Resuming attempt %s for student %s",
                existing.id,
                student_id,
                extra={"attempt_id": str(existing.id), "student_id": str(student_id)},
            )
            return self._handle(existing, assignment, activity, completed, resumed=True)

        if assignment.attempts_exhausted(completed):
            raise AttemptsExhausted(assignment.attempts_allowed)

        attempt = Attempt.new(
            assignment_id=assignment.id,
            student_id=student_id,
            group_id=assignment.group_id,
            owner_id=assignment.owner_id,
            attempt_number=completed + 1,
            started_at=self._clock.now(),
        )
        try:
            stored = await self._attempts.create(attempt)
        except DuplicateAttemptError:
            # A concurrent begin won the insert; hand back its attempt.
            winner = await self._attempts.find_in_progress(assignment.id, student_id)
            if winner is None:
                raise AlreadyFinalized(attempt.id) from None
            return self._handle(winner, assignment, activity, completed, resumed=True)

        ATTEMPTS_STARTED.inc()
        logger.info(
            "Started attempt #%d (%s) on assignment %s",
            stored.attempt_number,
            stored.id,
            assignment.id,
            extra={
                "assignment_id": str(assignment.id),
                "attempt_id": str(stored.id),
                "student_id": str(student_id),
            },
        )
        return self._handle(stored, assignment, activity, completed, resumed=False)

    def _handle(
        self,
        attempt: Attempt,
        assignment: AssignmentRecord,
        activity: ActivityDefinition,
        completed: int,
        *,
        resumed: bool,
    ) -> AttemptHandle:
        return AttemptHandle(
            attempt=attempt,
            time_limit_minutes=assignment.time_limit_minutes,
            resumed=resumed,
            attempts_used=completed + 1,
            questions=_question_views(activity, attempt.id),
        )

    # ------------------------------------------------------------------
    # submit
    # ------------------------------------------------------------------

    async def submit(
        self, assignment_id: UUID, student_id: UUID, payload: SubmissionPayload
    ) -> Attempt:
        """Finalize an attempt.  See the module docstring for the race rules."""
        with _policy_rejections(
            "submit", assignment_id=str(assignment_id), student_id=str(student_id)
        ):
            return await self._submit(assignment_id, student_id, payload)

    async def _submit(
        self, assignment_id: UUID, student_id: UUID, payload: SubmissionPayload
    ) -> Attempt:
        # Fresh read: this is where a concurrent sweeper close becomes visible.
        assignment = await self._load_assignment(assignment_id)
        await self._require_member(student_id, assignment.group_id)
        activity = await self._load_activity(assignment)
        if assignment.status is AssignmentStatus.DRAFT:
            raise AssignmentNotOpen(assignment.id, assignment.status)

        attempt = await self._resolve_attempt(assignment, student_id, payload)
        if attempt is not None and attempt.attempt_state.is_terminal:
            # Flagged auto-save of an attempt that is already final:
            # acknowledge it, never rewrite it.
            return attempt

        if (
            attempt is None
            and assignment.status is AssignmentStatus.CLOSED
            and not payload.auto_save_on_closure
        ):
            raise AssignmentNotOpen(assignment.id, assignment.status)

        now = self._clock.now()
        fresh = attempt is None
        if attempt is None:
            completed = await self._attempts.count_terminal(assignment.id, student_id)
            if assignment.attempts_exhausted(completed):
                raise AttemptsExhausted(assignment.attempts_allowed)
            attempt = Attempt.new(
                assignment_id=assignment.id,
                student_id=student_id,
                group_id=assignment.group_id,
                owner_id=assignment.owner_id,
                attempt_number=completed + 1,
                started_at=now,
            )

        forced_closure = assignment.status is AssignmentStatus.CLOSED
        auto_save = payload.auto_save_on_closure or forced_closure
        if forced_closure and not payload.auto_save_on_closure:
            logger.info(
                "Assignment %s closed before attempt %s was submitted; auto-saving",
                assignment.id,
                attempt.id,
                extra={"assignment_id": str(assignment.id), "attempt_id": str(attempt.id)},
            )

        timed_out = (
            not auto_save
            and activity.kind.is_time_limited
            and assignment.time_limit_minutes is not None
            and now > attempt.started_at + timedelta(minutes=assignment.time_limit_minutes)
        )
        if auto_save:
            state = AttemptState.AUTO_SAVED_ON_CLOSURE
        elif timed_out:
            state = AttemptState.COMPLETED_BY_TIMEOUT
        else:
            state = AttemptState.COMPLETED_BY_USER

        answers = _structure_answers(activity, payload, required=not auto_save)

        if auto_save:
            if attempt.submission_state is SubmissionState.GRADED:
                score, submission_state = attempt.score, SubmissionState.GRADED
                graded_at = attempt.graded_at
            else:
                score, submission_state, graded_at = None, SubmissionState.PENDING, None
        elif (
            isinstance(answers, QuizAnswers)
            and assignment.max_points is not None
            and activity.questions
        ):
            score = score_quiz(activity, answers.records, assignment.max_points)
            submission_state, graded_at = SubmissionState.GRADED, now
        else:
            score, submission_state, graded_at = None, SubmissionState.SUBMITTED, None

        finalized = replace(
            attempt,
            attempt_state=state,
            submission_state=submission_state,
            submitted_at=now,
            is_late=assignment.is_past_deadline(now),
            timed_out=timed_out,
            score=score,
            answers=answers,
            graded_at=graded_at,
        )
        try:
            if fresh:
                stored = await self._attempts.create(finalized)
            else:
                stored = await self._attempts.save(finalized)
        except (StaleAttemptError, DuplicateAttemptError):
            raise AlreadyFinalized(finalized.id) from None

        ATTEMPTS_FINALIZED.labels(attempt_state=state.value).inc()
        logger.info(
            "Attempt %s finalized as %s (late=%s, score=%s)",
            stored.id,
            state,
            stored.is_late,
            stored.score,
            extra={
                "assignment_id": str(assignment.id),
                "attempt_id": str(stored.id),
                "student_id": str(student_id),
                "attempt_state": state.value,
            },
        )

        if state in (AttemptState.COMPLETED_BY_USER, AttemptState.COMPLETED_BY_TIMEOUT):
            self._notifier.emit(
                NotificationKind.NEW_SUBMISSION,
                recipient_id=assignment.owner_id,
                sender_id=student_id,
                message=f"New submission for '{assignment.activity_title}'",
                link=f"/assignments/{assignment.id}/submissions/{student_id}",
            )
        return stored

    async def _resolve_attempt(
        self, assignment: AssignmentRecord, student_id: UUID, payload: SubmissionPayload
    ) -> Attempt | None:
        """The attempt this submit finishes, or None when a new one is needed."""
        if payload.attempt_id is not None:
            attempt = await self._attempts.load_by_id(payload.attempt_id)
            if attempt is None:
                raise AttemptNotFound(payload.attempt_id)
            if not attempt.belongs_to(assignment.id, student_id):
                raise AttemptNotOwnedByCaller(attempt.id)
            if attempt.attempt_state.is_terminal and not payload.auto_save_on_closure:
                raise AlreadyFinalized(attempt.id)
            return attempt

        in_progress = await self._attempts.find_in_progress(assignment.id, student_id)
        if in_progress is not None:
            return in_progress
        if assignment.uses_timed_flow:
            completed = await self._attempts.count_terminal(assignment.id, student_id)
            if assignment.attempts_exhausted(completed):
                raise AttemptsExhausted(assignment.attempts_allowed)
            raise ActivityFlowMismatch("timed activities must be started before submitting")
        return None

    # ------------------------------------------------------------------
    # grade / read
    # ------------------------------------------------------------------

    async def grade(
        self,
        attempt_id: UUID,
        grader_id: UUID,
        score: float,
        feedback: str | None = None,
    ) -> Attempt:
        """Record a teacher's score for a questionnaire or freeform attempt."""
        with _policy_rejections(
            "grade", attempt_id=str(attempt_id), user_id=str(grader_id)
        ):
            return await self._grade(attempt_id, grader_id, score, feedback)

    async def _grade(
        self, attempt_id: UUID, grader_id: UUID, score: float, feedback: str | None
    ) -> Attempt:
        attempt = await self._attempts.load_by_id(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        if not await self._access.is_owner(grader_id, attempt.assignment_id):
            raise NotAssignmentOwner(grader_id, attempt.assignment_id)
        assignment = await self._load_assignment(attempt.assignment_id)
        if assignment.activity_kind is ActivityKind.QUIZ:
            raise ActivityFlowMismatch("quiz attempts are graded automatically")
        if attempt.is_in_progress:
            raise AttemptStillInProgress(attempt.id)
        validate_manual_score(score, assignment.max_points)

        graded = replace(
            attempt,
            score=score,
            feedback=feedback,
            graded_at=self._clock.now(),
            submission_state=SubmissionState.GRADED,
        )
        try:
            stored = await self._attempts.save(graded)
        except StaleAttemptError:
            raise AlreadyFinalized(attempt.id) from None

        logger.info(
            "Attempt %s graded: %s/%s",
            stored.id,
            score,
            assignment.max_points,
            extra={"attempt_id": str(stored.id), "user_id": str(grader_id)},
        )
        self._notifier.emit(
            NotificationKind.GRADED_WORK,
            recipient_id=stored.student_id,
            sender_id=grader_id,
            message=f"Your work for '{assignment.activity_title}' has been graded",
            link=f"/assignments/{assignment.id}/attempts/{stored.id}",
        )
        return stored

    async def get_attempt(self, attempt_id: UUID, caller_id: UUID) -> Attempt:
        """Load an attempt for its student or the assignment's owner."""
        attempt = await self._attempts.load_by_id(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        if attempt.student_id != caller_id and attempt.owner_id != caller_id:
            raise AttemptNotOwnedByCaller(attempt.id)
        return attempt

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _load_assignment(self, assignment_id: UUID) -> AssignmentRecord:
        assignment = await self._catalog.load_assignment(assignment_id)
        if assignment is None:
            raise AssignmentNotFound(assignment_id)
        return assignment

    async def _load_activity(self, assignment: AssignmentRecord) -> ActivityDefinition:
        activity = await self._catalog.load_activity(assignment.activity_id)
        if activity is None:
            logger.error(
                "Activity %s vanished for assignment %s",
                assignment.activity_id,
                assignment.id,
                extra={"assignment_id": str(assignment.id)},
            )
            raise ActivityNotResolvable(assignment.id, assignment.activity_id)
        return activity

    async def _require_member(self, user_id: UUID, group_id: UUID) -> None:
        if not await self._access.is_approved_member(user_id, group_id):
            raise NotApprovedMember(user_id, group_id)


def _structure_answers(
    activity: ActivityDefinition, payload: SubmissionPayload, *, required: bool
) -> AttemptAnswers:
    match activity.kind:
        case ActivityKind.QUIZ:
            if required and not payload.answers:
                raise MissingRequiredPayload("answers are required for a quiz")
            return QuizAnswers(records=_answer_records(activity, payload.answers))
        case ActivityKind.OPEN_QUESTIONNAIRE:
            if required and not payload.answers:
                raise MissingRequiredPayload("answers are required for a questionnaire")
            return QuestionnaireAnswers(records=_answer_records(activity, payload.answers))
        case ActivityKind.FREEFORM_SUBMISSION:
            link = (payload.work_link or "").strip()
            if required and not link:
                raise MissingRequiredPayload("a work link is required")
            return WorkSubmission(work_link=link or None)
        case _:
            assert_never(activity.kind)


def _answer_records(
    activity: ActivityDefinition, answers: Mapping[int, str | None] | None
) -> tuple[AnswerRecord, ...]:
    """One record per question, in order.  Unknown indices are dropped."""
    answers = answers or {}
    records = []
    for index in range(activity.question_count):
        raw = answers.get(index)
        text = raw.strip() if raw is not None else None
        records.append(AnswerRecord(question_index=index, answer=text or None))
    return tuple(records)


def _question_views(
    activity: ActivityDefinition, attempt_id: UUID
) -> tuple[QuestionView, ...]:
    # Seeded by the attempt id: a resumed attempt shows the same order.
    rng = random.Random(attempt_id.int)
    views = []
    for index, question in enumerate(activity.questions):
        options = list(question.options)
        if activity.kind is ActivityKind.QUIZ:
            rng.shuffle(options)
        views.append(QuestionView(index=index, text=question.text, options=tuple(options)))
    return tuple(views)
