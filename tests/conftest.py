from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from quiz_session.client import QuizApiClient
from quiz_session.devserver import DevStore, create_app

BASE_URL = "http://testserver/api"

CLASS_ID = "class-1"
STUDENT_ID = "student-1"
MATERIAL_ID = "material-1"
QUIZ_ID = "quiz-1"


class FakeClock:
    """Controllable wall clock (epoch seconds)."""

    def __init__(self, start: Optional[float] = None) -> None:
        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def millis(self) -> int:
        return int(self.now * 1000)


Reply = Union[httpx.Response, Exception]


class ScriptedBackend:
    """
    httpx MockTransport handler answering from a route table.

    A route maps (method, path) to a response, an exception to raise, or a
    list of those consumed in order (the last one repeats).
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None) -> None:
        self.routes: Dict[Tuple[str, str], Any] = dict(routes or {})
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if reply is None:
            return httpx.Response(404, json={"error": "Not found"})
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.method == method and c.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def offline(request_path: str = "/") -> Exception:
    return httpx.ConnectError("connection refused", request=httpx.Request("GET", request_path))


def quiz_payload(question_count: int = 5) -> Dict[str, Any]:
    return {
        "id": QUIZ_ID,
        "title": "Unit Quiz",
        "quiz_questions": [
            {
                "id": f"q{i}",
                "question": f"Question {i}",
                "question_type": "identification",
                "order_number": i,
            }
            for i in range(1, question_count + 1)
        ],
    }


def material_payload(time_limit: Optional[int] = 10) -> Dict[str, Any]:
    return {
        "id": MATERIAL_ID,
        "title": "Unit Quiz",
        "time_limit": time_limit,
        "quiz_id": QUIZ_ID,
    }


def build_store(time_limit: Optional[int] = 10, question_count: int = 5) -> DevStore:
    store = DevStore()
    store.add_quiz(quiz_payload(question_count))
    store.add_material(CLASS_ID, material_payload(time_limit))
    return store


def make_api(store: DevStore) -> QuizApiClient:
    """Client wired straight into the in-memory backend."""
    return QuizApiClient(
        base_url=BASE_URL, transport=httpx.ASGITransport(app=create_app(store))
    )


def scripted_api(backend: ScriptedBackend) -> QuizApiClient:
    return QuizApiClient(base_url=BASE_URL, transport=backend.transport())


def answers_of(count: int, value: str = "x") -> Dict[str, str]:
    return {f"q{i}": f"{value}{i}" for i in range(1, count + 1)}


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll the event loop until ``predicate`` holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dev_store() -> DevStore:
    return build_store()
