"""
Timed quiz-taking session orchestration.
Connects reconciliation, autosave, the deadline timer and the submission
guard into one session lifecycle.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from quiz_session.client import QuizApiClient
from quiz_session.config import settings
from quiz_session.logger import bind_session, setup_logger
from quiz_session.models import Material, ProgressSummary, QuizQuestion, Submission
from quiz_session.primitives.autosave import DebouncedPersistence, SaveStatus
from quiz_session.primitives.reconcile import ProgressReconciler, ReconcileResult
from quiz_session.primitives.submit import (
    ALREADY_SUBMITTED_MESSAGE,
    SubmissionGuard,
    SubmissionOutcome,
    SubmissionStatus,
    result_path,
)
from quiz_session.scheduling import BestEffortTasks
from quiz_session.storage import KeyValueStore, LocalCache
from quiz_session.timer import DeadlineTimer, TimerState
from quiz_session.utils.exceptions import (
    MaterialNotFoundError,
    QuizLoadError,
    QuizSessionError,
    SessionClosedError,
)
from quiz_session.utils.helpers import count_answered

logger = setup_logger(__name__)

NOTHING_ANSWERED_MESSAGE = "Answer at least one question before submitting"

TERMINAL_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.ALREADY_SUBMITTED)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RECONCILING = "reconciling"
    RUNNING = "running"
    SUBMITTING = "submitting"
    TERMINATED = "terminated"
    ALREADY_SUBMITTED = "already_submitted"
    FAILED = "failed"


class QuizSessionController:
    """
    One student's attempt at one quiz material.

    Lifecycle: ``load()`` fetches the material and questions, reconciles
    saved progress and starts the deadline timer for timed materials.
    ``set_answer()`` records edits; ``submit()`` or the deadline finalizes.
    ``close()`` tears the session down, flushing unsaved answers.
    Network failures never escape; they end up in ``error`` or the save
    indicator.
    """

    def __init__(
        self,
        api: QuizApiClient,
        store: KeyValueStore,
        class_id: str,
        student_id: str,
        material_id: str,
        clock: Callable[[], float] = time.time,
        on_navigate: Optional[Callable[[str], None]] = None,
        autosave_delay: Optional[float] = None,
        tick_interval: Optional[float] = None,
        expiry_retry_interval: Optional[float] = None,
        on_save_status: Optional[Callable[[SaveStatus], None]] = None,
    ) -> None:
        self.api = api
        self.class_id = class_id
        self.student_id = student_id
        self.material_id = material_id
        self.clock = clock
        self.on_navigate = on_navigate
        self.autosave_delay = autosave_delay
        self.tick_interval = tick_interval
        self.expiry_retry_interval = expiry_retry_interval
        self.on_save_status = on_save_status

        self.cache = LocalCache(store, material_id)
        self.tasks = BestEffortTasks()

        self.state = SessionState.UNINITIALIZED
        self.material: Optional[Material] = None
        self.questions: List[QuizQuestion] = []
        self.answers: Dict[str, str] = {}
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.submission_id: Optional[str] = None
        self.redirect_to: Optional[str] = None

        self.reconciler: Optional[ProgressReconciler] = None
        self.persistence: Optional[DebouncedPersistence] = None
        self.guard: Optional[SubmissionGuard] = None
        self.timer: Optional[DeadlineTimer] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def load(self) -> SessionState:
        """Fetch the quiz, reconcile saved progress and start the clock."""
        if self.state is not SessionState.UNINITIALIZED:
            return self.state
        self.state = SessionState.RECONCILING
        bind_session(self.student_id, self.material_id)

        try:
            self.material = await self.api.get_material(
                self.class_id, self.student_id, self.material_id
            )
            if not self.material.quiz_id:
                raise QuizLoadError("Quiz not found")
            quiz = await self.api.get_quiz(self.material.quiz_id)
        except MaterialNotFoundError as e:
            return self._fail(str(e))
        except QuizLoadError as e:
            return self._fail(str(e))
        except QuizSessionError as e:
            logger.error(f"❌ Failed to load quiz: {e}")
            return self._fail("Failed to load quiz")

        self.questions = sorted(
            quiz.quiz_questions, key=lambda q: (q.order_number is None, q.order_number or 0)
        )
        quiz_id = self.material.quiz_id

        self.persistence = DebouncedPersistence(
            self.api,
            self.cache,
            self.student_id,
            self.material_id,
            quiz_id,
            tasks=self.tasks,
            clock=self.clock,
            delay=self.autosave_delay,
            on_status=self.on_save_status,
        )
        self.guard = SubmissionGuard(
            self.api,
            self.cache,
            self.persistence,
            self.class_id,
            self.student_id,
            self.material_id,
            quiz_id,
            tasks=self.tasks,
            clock=self.clock,
        )
        self.reconciler = ProgressReconciler(
            self.api, self.cache, self.student_id, self.material_id
        )

        result = await self.reconciler.reconcile()
        if result.already_submitted:
            self._mark_already_submitted(result.submission_id)
            return self.state

        self._adopt(result)
        self.state = SessionState.RUNNING
        logger.info(
            f"📋 Session ready: {len(self.questions)} questions, "
            f"{self.answered_count} answered, "
            f"{'timed' if self.material.is_timed else 'untimed'}"
        )

        if self.material.is_timed and self.reconciler.ready:
            self.timer = DeadlineTimer(
                self.material.time_limit,
                self.cache,
                on_expire=self._on_deadline,
                clock=self.clock,
                tick_interval=self.tick_interval,
                retry_interval=self.expiry_retry_interval,
            )
            await self.timer.start()

        return self.state

    def _adopt(self, result: ReconcileResult) -> None:
        self.answers = dict(result.answers)
        if result.needs_sync:
            self.persistence.schedule_sync(self.answers)

    def _fail(self, message: str) -> SessionState:
        logger.error(f"❌ Cannot start quiz: {message}")
        self.error = message
        self.state = SessionState.FAILED
        return self.state

    def _mark_already_submitted(self, submission_id: Optional[str]) -> None:
        self.state = SessionState.ALREADY_SUBMITTED
        self.submission_id = submission_id
        self.notice = ALREADY_SUBMITTED_MESSAGE
        self.redirect_to = result_path(self.class_id, self.material_id, submission_id)

    async def close(self) -> None:
        """Tear down: flush unsaved answers and stop all timers."""
        if self.persistence is not None:
            self.persistence.cancel()
            if self.state is SessionState.RUNNING:
                self.persistence.flush_beacon(self.answers)
            self.persistence.close()
        if self.timer is not None:
            self.timer.terminate()
        await self.tasks.drain()

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def set_answer(self, question_id: str, answer: str) -> None:
        if self.state is not SessionState.RUNNING:
            raise SessionClosedError(f"Session is {self.state.value}, answers are closed")
        if self.timer is not None and self.timer.state is TimerState.EXPIRED:
            raise SessionClosedError("Time is up, answers are closed")
        question_id = str(question_id)
        if answer == "":
            self.answers.pop(question_id, None)
        else:
            self.answers[question_id] = answer
        self.persistence.record(self.answers)

    @property
    def answered_count(self) -> int:
        return count_answered(self.answers)

    @property
    def summary(self) -> ProgressSummary:
        return ProgressSummary(
            answered=self.answered_count,
            total_questions=len(self.questions),
            total_points=sum(q.weight for q in self.questions),
        )

    @property
    def save_status(self) -> SaveStatus:
        if self.persistence is None:
            return SaveStatus.IDLE
        return self.persistence.status

    # ------------------------------------------------------------------
    # Timer view
    # ------------------------------------------------------------------
    @property
    def remaining_seconds(self) -> Optional[int]:
        return self.timer.remaining_seconds if self.timer else None

    @property
    def time_display(self) -> Optional[str]:
        return self.timer.display if self.timer else None

    @property
    def is_low_time(self) -> bool:
        return self.timer.is_low_time(settings.low_time_warning_seconds) if self.timer else False

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    @property
    def can_submit(self) -> bool:
        return (
            self.state is SessionState.RUNNING
            and not self.guard.latched
            and self.answered_count > 0
        )

    async def submit(self) -> SubmissionOutcome:
        """Explicit submission by the student."""
        if self.state is SessionState.RUNNING and self.answered_count == 0:
            self.error = NOTHING_ANSWERED_MESSAGE
            return SubmissionOutcome(SubmissionStatus.IGNORED, message=NOTHING_ANSWERED_MESSAGE)
        return await self._finalize("manual")

    async def _on_deadline(self) -> bool:
        """Deadline submission; True once the session has a terminal outcome."""
        outcome = await self._finalize("deadline")
        if outcome.status is SubmissionStatus.IGNORED:
            # another attempt is in flight, or the session already ended
            return self.state not in (SessionState.RUNNING, SessionState.SUBMITTING)
        return outcome.status in TERMINAL_STATUSES

    async def _finalize(self, trigger: str) -> SubmissionOutcome:
        if self.guard is None or self.state not in (
            SessionState.RUNNING,
            SessionState.SUBMITTING,
        ):
            return SubmissionOutcome(SubmissionStatus.IGNORED)

        if not self.guard.latched:
            logger.info(f"📨 Finalizing session ({trigger})")
            self.state = SessionState.SUBMITTING
            self.error = None

        outcome = await self.guard.submit(self.answers)

        if outcome.status is SubmissionStatus.IGNORED:
            return outcome

        if outcome.status in TERMINAL_STATUSES and self.timer is not None:
            self.timer.terminate()

        if outcome.status is SubmissionStatus.SUBMITTED:
            self.state = SessionState.TERMINATED
            self.submission_id = outcome.submission_id
            self.redirect_to = outcome.redirect_to
            if self.on_navigate is not None:
                self.on_navigate(outcome.redirect_to)
        elif outcome.status is SubmissionStatus.ALREADY_SUBMITTED:
            self._mark_already_submitted(outcome.submission_id)
            if self.on_navigate is not None:
                self.on_navigate(self.redirect_to)
        else:
            self.error = outcome.message
            self.state = SessionState.RUNNING

        return outcome

    def dismiss_error(self) -> None:
        self.error = None

    async def fetch_submission(self) -> Optional[Submission]:
        """Look up the student's submission for this material (result view)."""
        try:
            return await self.api.get_submission(self.student_id, self.material_id)
        except QuizSessionError as e:
            logger.warning(f"⚠️ Could not load submission: {e}")
            return None
