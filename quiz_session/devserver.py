"""
In-memory implementation of the student quiz endpoints.

Used for local development (``python main.py``) and as the backend of the
test-suite. Drafts and submissions live in process memory; there is no
authentication and no grading.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from quiz_session.logger import setup_logger

logger = setup_logger(__name__)

Key = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_start_time(value: Any) -> datetime:
    # Clients send epoch milliseconds; ISO strings are accepted too
    if value in (None, ""):
        return _utcnow()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class DevStore:
    """Backing data for the development server."""

    materials: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    quizzes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    drafts: Dict[Key, Dict[str, Any]] = field(default_factory=dict)
    submissions: Dict[Key, Dict[str, Any]] = field(default_factory=dict)
    # Request counters, handy when asserting on client behaviour
    save_calls: int = 0
    submit_calls: int = 0
    delete_calls: int = 0

    def add_material(self, class_id: str, material: Dict[str, Any]) -> None:
        self.materials.setdefault(class_id, []).append(material)

    def add_quiz(self, quiz: Dict[str, Any]) -> None:
        self.quizzes[str(quiz["id"])] = quiz

    def put_draft(
        self,
        student_id: str,
        material_id: str,
        quiz_id: str,
        answers: Dict[str, str],
        start_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = _utcnow()
        draft = {
            "student_id": student_id,
            "material_id": material_id,
            "quiz_id": quiz_id,
            "answers": dict(answers or {}),
            "start_time": (start_time or now).isoformat(),
            "updated_at": now.isoformat(),
        }
        self.drafts[(student_id, material_id)] = draft
        return draft

    def put_submission(
        self,
        student_id: str,
        material_id: str,
        answers: Dict[str, str],
        time_taken: Optional[int] = None,
    ) -> Dict[str, Any]:
        submission = {
            "id": uuid.uuid4().hex,
            "student_id": student_id,
            "material_id": material_id,
            "answers": dict(answers or {}),
            "time_taken": time_taken,
            "submitted_at": _utcnow().isoformat(),
        }
        self.submissions[(student_id, material_id)] = submission
        return submission


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


router = APIRouter(prefix="/api")


@router.get("/student/classes/{class_id}/materials")
async def list_materials(class_id: str, request: Request):
    store: DevStore = request.app.state.store
    return {"materials": store.materials.get(class_id, [])}


@router.get("/teacher/quizzes/{quiz_id}")
async def get_quiz(quiz_id: str, request: Request):
    store: DevStore = request.app.state.store
    quiz = store.quizzes.get(quiz_id)
    if quiz is None:
        return _error("Quiz not found", 404)
    return {"quiz": quiz}


@router.get("/student/quiz-progress")
async def load_progress(request: Request):
    store: DevStore = request.app.state.store
    student_id = request.query_params.get("studentId")
    material_id = request.query_params.get("materialId")
    if not student_id or not material_id:
        return _error("studentId and materialId are required", 400)

    submission = store.submissions.get((student_id, material_id))
    if submission is not None:
        return {"alreadySubmitted": True, "submissionId": submission["id"], "draft": None}

    return {
        "alreadySubmitted": False,
        "draft": store.drafts.get((student_id, material_id)),
    }


@router.post("/student/quiz-progress")
async def save_progress(request: Request):
    store: DevStore = request.app.state.store
    store.save_calls += 1
    body = await _json_body(request)
    if body is None:
        return _error("Invalid JSON", 400)

    student_id = body.get("studentId")
    material_id = body.get("materialId")
    quiz_id = body.get("quizId")
    if not student_id or not material_id or not quiz_id:
        return _error("studentId, materialId, and quizId are required", 400)

    if (student_id, material_id) in store.submissions:
        return _error("Quiz already submitted", 409, alreadySubmitted=True)

    try:
        start_time = _parse_start_time(body.get("startTime"))
    except ValueError:
        return _error("Invalid startTime", 400)

    draft = store.put_draft(
        student_id, material_id, quiz_id, body.get("answers") or {}, start_time
    )
    return {"saved": True, "progress": draft}


@router.delete("/student/quiz-progress")
async def delete_progress(request: Request):
    store: DevStore = request.app.state.store
    store.delete_calls += 1
    student_id = request.query_params.get("studentId")
    material_id = request.query_params.get("materialId")
    if not student_id or not material_id:
        return _error("studentId and materialId are required", 400)

    store.drafts.pop((student_id, material_id), None)
    return {"deleted": True}


@router.post("/student/submit-quiz")
async def submit_quiz(request: Request):
    store: DevStore = request.app.state.store
    store.submit_calls += 1
    body = await _json_body(request)
    if body is None:
        return _error("Invalid JSON", 400)

    student_id = body.get("student_id")
    material_id = body.get("material_id")
    quiz_id = body.get("quiz_id")
    answers = body.get("answers")
    if not student_id or not material_id or not quiz_id or answers is None:
        return _error("Material ID, student ID, quiz ID, and answers are required", 400)

    if (student_id, material_id) in store.submissions:
        return _error("You have already submitted this quiz", 409)
    if quiz_id not in store.quizzes:
        return _error("Quiz not found", 404)

    submission = store.put_submission(
        student_id, material_id, answers, body.get("time_taken")
    )
    logger.info(f"📥 Submission {submission['id']} for material {material_id}")
    return JSONResponse(
        status_code=201,
        content={"message": "Quiz submitted successfully", "submission": submission},
    )


@router.get("/student/submit-quiz")
async def get_submission(request: Request):
    store: DevStore = request.app.state.store
    student_id = request.query_params.get("studentId")
    material_id = request.query_params.get("materialId")
    if not student_id or not material_id:
        return _error("Material ID and student ID are required", 400)
    return {"submission": store.submissions.get((student_id, material_id))}


def seed_demo(store: DevStore) -> DevStore:
    """A ten-minute demo quiz in class ``demo-class``."""
    store.add_quiz(
        {
            "id": "demo-quiz",
            "title": "Demo Quiz",
            "quiz_questions": [
                {
                    "id": "q1",
                    "question": "2 + 2 = ?",
                    "question_type": "multiple-choice",
                    "options": ["3", "4", "5"],
                    "order_number": 1,
                },
                {
                    "id": "q2",
                    "question": "Python is dynamically typed.",
                    "question_type": "true-false",
                    "order_number": 2,
                },
                {
                    "id": "q3",
                    "question": "Name the keyword that defines a function.",
                    "question_type": "identification",
                    "order_number": 3,
                },
            ],
        }
    )
    store.add_material(
        "demo-class",
        {
            "id": "demo-material",
            "title": "Demo Quiz",
            "description": "A short timed quiz",
            "time_limit": 10,
            "quiz_id": "demo-quiz",
        },
    )
    return store


def create_app(store: Optional[DevStore] = None) -> FastAPI:
    app = FastAPI(title="Quiz Session Dev Server", docs_url=None, redoc_url=None)
    app.state.store = store if store is not None else DevStore()
    app.include_router(router)
    return app
