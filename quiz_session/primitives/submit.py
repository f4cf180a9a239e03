"""
Quiz submission with a single-flight guard.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from quiz_session.client import QuizApiClient
from quiz_session.logger import setup_logger
from quiz_session.models import SubmitQuizRequest
from quiz_session.primitives.autosave import DebouncedPersistence
from quiz_session.scheduling import BestEffortTasks
from quiz_session.storage import LocalCache
from quiz_session.utils.exceptions import AlreadySubmittedError, ApiError, QuizSessionError
from quiz_session.utils.helpers import now_millis

logger = setup_logger(__name__)

ALREADY_SUBMITTED_MESSAGE = "You have already submitted this quiz"
SUBMIT_FAILED_MESSAGE = "An error occurred while submitting"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass
class SubmissionOutcome:
    status: SubmissionStatus
    submission_id: Optional[str] = None
    redirect_to: Optional[str] = None
    message: Optional[str] = None


def result_path(class_id: str, material_id: str, submission_id: Optional[str]) -> str:
    """Where the student lands after a submission."""
    if submission_id:
        return f"/student/class/{class_id}/quiz/{material_id}/result/{submission_id}"
    return f"/student/class/{class_id}"


class SubmissionGuard:
    """
    Guarantees at most one effective submission per session.

    The latch is taken before the first await, so triggers firing in the
    same tick (button, deadline) collapse into a single request. It is only
    released again when the attempt fails with a retryable error.
    """

    def __init__(
        self,
        api: QuizApiClient,
        cache: LocalCache,
        persistence: DebouncedPersistence,
        class_id: str,
        student_id: str,
        material_id: str,
        quiz_id: str,
        tasks: Optional[BestEffortTasks] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api = api
        self.cache = cache
        self.persistence = persistence
        self.class_id = class_id
        self.student_id = student_id
        self.material_id = material_id
        self.quiz_id = quiz_id
        self.tasks = tasks or BestEffortTasks()
        self.clock = clock
        self._latched = False
        self.attempts = 0

    @property
    def latched(self) -> bool:
        return self._latched

    def _time_taken(self) -> Optional[int]:
        start_time = self.cache.load_start_time()
        if start_time is None:
            return None
        return max(0, (now_millis(self.clock) - start_time) // 1000)

    async def submit(self, answers: Dict[str, str]) -> SubmissionOutcome:
        """
        Submit the answers once.

        Returns:
            SubmissionOutcome; IGNORED when another attempt holds the latch.
        """
        if self._latched:
            logger.info("🔒 Submission already in progress, ignoring trigger")
            return SubmissionOutcome(SubmissionStatus.IGNORED)
        self._latched = True
        self.attempts += 1

        # The submission payload supersedes any queued draft save
        self.persistence.cancel()

        request = SubmitQuizRequest(
            student_id=self.student_id,
            material_id=self.material_id,
            quiz_id=self.quiz_id,
            answers=dict(answers),
            time_taken=self._time_taken(),
        )
        logger.info(f"📤 Submitting {len(request.answers)} answers for material {self.material_id}")

        try:
            response = await self.api.submit_quiz(request)
        except AlreadySubmittedError:
            logger.warning("🏁 Server reports the quiz was already submitted")
            self._finish()
            existing_id = await self._existing_submission_id()
            return SubmissionOutcome(
                SubmissionStatus.ALREADY_SUBMITTED,
                submission_id=existing_id,
                redirect_to=result_path(self.class_id, self.material_id, existing_id),
                message=ALREADY_SUBMITTED_MESSAGE,
            )
        except QuizSessionError as e:
            logger.error(f"❌ Submission failed: {e}")
            self._latched = False
            message = SUBMIT_FAILED_MESSAGE
            if isinstance(e, ApiError) and e.status_code is not None:
                message = e.message or SUBMIT_FAILED_MESSAGE
            return SubmissionOutcome(SubmissionStatus.FAILED, message=message)

        submission_id = response.submission.id if response.submission else None
        self._finish()
        logger.info(f"✅ Quiz submitted (submission: {submission_id})")
        return SubmissionOutcome(
            SubmissionStatus.SUBMITTED,
            submission_id=submission_id,
            redirect_to=result_path(self.class_id, self.material_id, submission_id),
            message=response.message,
        )

    async def _existing_submission_id(self) -> Optional[str]:
        """Id of the submission that beat us; None sends the student to the class page."""
        try:
            submission = await self.api.get_submission(self.student_id, self.material_id)
        except QuizSessionError as e:
            logger.warning(f"⚠️ Could not look up the existing submission: {e}")
            return None
        return submission.id if submission else None

    def _finish(self) -> None:
        """Clear every trace of the draft; the server-side delete is best-effort."""
        self.persistence.seal()
        self.cache.clear()
        self.tasks.spawn(
            self.api.delete_progress(self.student_id, self.material_id),
            name="delete draft",
        )
