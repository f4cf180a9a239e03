from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from quiz_session.config import settings
from quiz_session.logger import setup_logger
from quiz_session.models import (
    Material,
    ProgressStatus,
    Quiz,
    SaveDraftRequest,
    Submission,
    SubmitQuizRequest,
    SubmitQuizResponse,
)
from quiz_session.utils.exceptions import (
    AlreadySubmittedError,
    ApiError,
    MaterialNotFoundError,
    QuizLoadError,
)

logger = setup_logger(__name__)

PROGRESS_PATH = "/student/quiz-progress"
SUBMIT_PATH = "/student/submit-quiz"


class QuizApiClient:
    """
    Async client for the learning-management JSON endpoints.

    Every failure surfaces as an ``ApiError`` (HTTP 409 as
    ``AlreadySubmittedError``); callers decide whether it is fatal.
    No retries are attempted here.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        default_headers = {"User-Agent": "quiz-session/0.1"}
        if headers:
            default_headers.update(headers)

        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.api_base_url).rstrip("/"),
            timeout=timeout if timeout is not None else settings.request_timeout,
            transport=transport,
            headers=default_headers,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "QuizApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Materials and quizzes
    # ------------------------------------------------------------------
    async def get_materials(self, class_id: str, student_id: str) -> List[Material]:
        data = await self._request(
            "GET",
            f"/student/classes/{class_id}/materials",
            params={"studentId": student_id},
        )
        try:
            return [Material.model_validate(m) for m in data.get("materials") or []]
        except ValidationError as e:
            raise ApiError(f"Malformed materials response: {e}")

    async def get_material(
        self, class_id: str, student_id: str, material_id: str
    ) -> Material:
        materials = await self.get_materials(class_id, student_id)
        for material in materials:
            if material.id == material_id:
                return material
        raise MaterialNotFoundError("Material not found")

    async def get_quiz(self, quiz_id: str) -> Quiz:
        try:
            data = await self._request("GET", f"/teacher/quizzes/{quiz_id}")
        except ApiError as e:
            raise QuizLoadError(e.message or "Failed to load quiz questions")

        if not data.get("quiz"):
            raise QuizLoadError(data.get("error") or "Failed to load quiz questions")
        try:
            return Quiz.model_validate(data["quiz"])
        except ValidationError as e:
            logger.error(f"❌ Malformed quiz {quiz_id}: {e}")
            raise QuizLoadError("Failed to load quiz questions")

    # ------------------------------------------------------------------
    # Draft progress
    # ------------------------------------------------------------------
    async def get_progress(self, student_id: str, material_id: str) -> ProgressStatus:
        data = await self._request(
            "GET",
            PROGRESS_PATH,
            params={"studentId": student_id, "materialId": material_id},
        )
        try:
            return ProgressStatus.model_validate(data)
        except ValidationError as e:
            raise ApiError(f"Malformed progress response: {e}")

    async def save_progress(self, draft: SaveDraftRequest) -> None:
        await self._request("POST", PROGRESS_PATH, json_body=draft.to_payload())

    async def delete_progress(self, student_id: str, material_id: str) -> None:
        await self._request(
            "DELETE",
            PROGRESS_PATH,
            params={"studentId": student_id, "materialId": material_id},
        )

    async def send_beacon(self, draft: SaveDraftRequest) -> None:
        """Post the draft without reading the response."""
        await self._client.post(PROGRESS_PATH, json=draft.to_payload())

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def submit_quiz(self, request: SubmitQuizRequest) -> SubmitQuizResponse:
        data = await self._request("POST", SUBMIT_PATH, json_body=request.to_payload())
        try:
            return SubmitQuizResponse.model_validate(data)
        except ValidationError as e:
            raise ApiError(f"Malformed submission response: {e}")

    async def get_submission(
        self, student_id: str, material_id: str
    ) -> Optional[Submission]:
        data = await self._request(
            "GET",
            SUBMIT_PATH,
            params={"studentId": student_id, "materialId": material_id},
        )
        if not data.get("submission"):
            return None
        try:
            return Submission.model_validate(data["submission"])
        except ValidationError as e:
            raise ApiError(f"Malformed submission response: {e}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, params=params, json=json_body)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ {method} {path} failed: {e}")
            raise ApiError(f"{method} {path} failed: {e}")

        data: Any
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        if resp.status_code == 409:
            raise AlreadySubmittedError(data.get("error") or "You have already submitted this quiz")

        if resp.is_error:
            message = data.get("error") or f"HTTP {resp.status_code}"
            logger.warning(f"⚠️ {method} {path} -> HTTP {resp.status_code}: {message}")
            raise ApiError(message, status_code=resp.status_code)

        return data
