"""
Progress reconciliation between the local cache and the server draft.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from quiz_session.client import QuizApiClient
from quiz_session.logger import setup_logger
from quiz_session.storage import LocalCache
from quiz_session.utils.exceptions import QuizSessionError
from quiz_session.utils.helpers import count_answered, to_epoch_millis

logger = setup_logger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of loading a session's saved progress."""

    answers: Dict[str, str] = field(default_factory=dict)
    # "remote", "local" or "empty"
    source: str = "empty"
    already_submitted: bool = False
    submission_id: Optional[str] = None
    remote_available: bool = True

    @property
    def needs_sync(self) -> bool:
        """True when the adopted answers are newer than what the server holds."""
        return self.source == "local" and bool(self.answers)


class ProgressReconciler:
    """
    Picks the answer set to resume from.

    The server draft and the local cache may have diverged (another tab,
    another device, an unsent edit). The set with more answered questions
    wins, the server draft on a tie. A final submission on the server
    overrides everything. Network failures fall back to the cache.
    """

    def __init__(
        self,
        api: QuizApiClient,
        cache: LocalCache,
        student_id: str,
        material_id: str,
    ) -> None:
        self.api = api
        self.cache = cache
        self.student_id = student_id
        self.material_id = material_id
        self.ready = False

    async def reconcile(self) -> ReconcileResult:
        local = self.cache.load_answers() or {}

        try:
            status = await self.api.get_progress(self.student_id, self.material_id)
        except QuizSessionError as e:
            logger.warning(f"⚠️ Could not load saved progress, using local cache: {e}")
            self.ready = True
            return ReconcileResult(
                answers=local,
                source="local" if local else "empty",
                remote_available=False,
            )

        if status.already_submitted:
            logger.info(
                f"🏁 Material {self.material_id} already submitted "
                f"(submission: {status.submission_id})"
            )
            self.ready = True
            return ReconcileResult(
                source="remote",
                already_submitted=True,
                submission_id=status.submission_id,
            )

        draft = status.draft
        if draft is not None:
            if draft.start_time is not None and self.cache.load_start_time() is None:
                self.cache.save_start_time(to_epoch_millis(draft.start_time))
                logger.info("⏱️  Resuming start time from server draft")

            remote_count = count_answered(draft.answers)
            local_count = count_answered(local)
            if remote_count >= local_count:
                result = ReconcileResult(answers=dict(draft.answers), source="remote")
            else:
                result = ReconcileResult(answers=local, source="local")
            self.cache.save_answers(result.answers)
            logger.info(
                f"🔄 Reconciled answers: remote={remote_count}, local={local_count}, "
                f"using {result.source}"
            )
        elif local:
            result = ReconcileResult(answers=local, source="local")
            logger.info(f"🔄 No server draft, resuming {count_answered(local)} cached answers")
        else:
            result = ReconcileResult()

        self.ready = True
        return result
