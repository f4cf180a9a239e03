import asyncio
import json

import httpx
from conftest import (
    CLASS_ID,
    MATERIAL_ID,
    QUIZ_ID,
    STUDENT_ID,
    ScriptedBackend,
    build_store,
    make_api,
    scripted_api,
)

from quiz_session.primitives.autosave import DebouncedPersistence
from quiz_session.primitives.submit import SubmissionGuard, SubmissionStatus
from quiz_session.storage import LocalCache, MemoryStore

SUBMIT = ("POST", "/api/student/submit-quiz")
DELETE = ("DELETE", "/api/student/quiz-progress")


def make_guard(api, cache, clock, delay=10.0):
    persistence = DebouncedPersistence(
        api, cache, STUDENT_ID, MATERIAL_ID, QUIZ_ID, clock=clock, delay=delay
    )
    guard = SubmissionGuard(
        api,
        cache,
        persistence,
        CLASS_ID,
        STUDENT_ID,
        MATERIAL_ID,
        QUIZ_ID,
        tasks=persistence.tasks,
        clock=clock,
    )
    return guard, persistence


def test_concurrent_triggers_send_one_submission(clock):
    async def scenario():
        store = build_store()
        store.put_draft(STUDENT_ID, MATERIAL_ID, QUIZ_ID, {"q1": "A"})
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        cache.save_answers({"q1": "A"})
        async with make_api(store) as api:
            guard, _ = make_guard(api, cache, clock)
            outcomes = await asyncio.gather(
                guard.submit({"q1": "A"}), guard.submit({"q1": "A"}), guard.submit({"q1": "A"})
            )
            await guard.tasks.drain()

        statuses = sorted(o.status.value for o in outcomes)
        assert statuses == ["ignored", "ignored", "submitted"]
        assert store.submit_calls == 1
        assert store.delete_calls == 1
        assert (STUDENT_ID, MATERIAL_ID) not in store.drafts
        assert cache.load_answers() is None
        assert guard.latched

    asyncio.run(scenario())


def test_success_redirects_to_result_view(clock):
    async def scenario():
        store = build_store()
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        cache.save_start_time(clock.millis() - 90_000)
        async with make_api(store) as api:
            guard, _ = make_guard(api, cache, clock)
            outcome = await guard.submit({"q1": "A", "q2": "B"})
            await guard.tasks.drain()

        submission = store.submissions[(STUDENT_ID, MATERIAL_ID)]
        assert outcome.status is SubmissionStatus.SUBMITTED
        assert outcome.submission_id == submission["id"]
        assert outcome.redirect_to == (
            f"/student/class/{CLASS_ID}/quiz/{MATERIAL_ID}/result/{submission['id']}"
        )
        assert submission["answers"] == {"q1": "A", "q2": "B"}
        assert submission["time_taken"] == 90
        assert cache.load_start_time() is None

    asyncio.run(scenario())


def test_already_submitted_is_terminal(clock):
    async def scenario():
        store = build_store()
        existing = store.put_submission(STUDENT_ID, MATERIAL_ID, {"q1": "old"})
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        cache.save_answers({"q1": "A"})
        cache.save_start_time(clock.millis())
        async with make_api(store) as api:
            guard, persistence = make_guard(api, cache, clock)
            outcome = await guard.submit({"q1": "A"})
            retry = await guard.submit({"q1": "A"})
            await guard.tasks.drain()

        assert outcome.status is SubmissionStatus.ALREADY_SUBMITTED
        assert outcome.message == "You have already submitted this quiz"
        assert outcome.submission_id == existing["id"]
        assert outcome.redirect_to == (
            f"/student/class/{CLASS_ID}/quiz/{MATERIAL_ID}/result/{existing['id']}"
        )
        assert retry.status is SubmissionStatus.IGNORED
        assert guard.latched
        assert persistence.sealed
        assert cache.load_answers() is None
        assert cache.load_start_time() is None
        assert store.submit_calls == 1
        assert store.submissions[(STUDENT_ID, MATERIAL_ID)]["answers"] == {"q1": "old"}

    asyncio.run(scenario())


def test_already_submitted_falls_back_to_class_page(clock):
    async def scenario():
        backend = ScriptedBackend(
            {
                SUBMIT: httpx.Response(409, json={"error": "You have already submitted this quiz"}),
                ("GET", "/api/student/submit-quiz"): httpx.Response(
                    500, json={"error": "Failed to fetch submission"}
                ),
                DELETE: httpx.Response(200, json={"deleted": True}),
            }
        )
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        async with scripted_api(backend) as api:
            guard, _ = make_guard(api, cache, clock)
            outcome = await guard.submit({"q1": "A"})
            await guard.tasks.drain()

        assert outcome.status is SubmissionStatus.ALREADY_SUBMITTED
        assert outcome.submission_id is None
        assert outcome.redirect_to == f"/student/class/{CLASS_ID}"
        assert guard.latched

    asyncio.run(scenario())


def test_failure_releases_latch_for_retry(clock):
    async def scenario():
        backend = ScriptedBackend(
            {
                SUBMIT: [
                    httpx.Response(500, json={"error": "Failed to submit quiz"}),
                    httpx.Response(201, json={"submission": {"id": "sub-1"}}),
                ],
                DELETE: httpx.Response(200, json={"deleted": True}),
            }
        )
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        cache.save_answers({"q1": "A"})
        async with scripted_api(backend) as api:
            guard, persistence = make_guard(api, cache, clock)

            failed = await guard.submit({"q1": "A"})
            assert failed.status is SubmissionStatus.FAILED
            assert failed.message == "Failed to submit quiz"
            assert not guard.latched
            assert not persistence.sealed
            assert cache.load_answers() == {"q1": "A"}

            retried = await guard.submit({"q1": "A"})
            await guard.tasks.drain()

        assert retried.status is SubmissionStatus.SUBMITTED
        assert retried.submission_id == "sub-1"
        assert len(backend.calls_to(*SUBMIT)) == 2
        assert guard.attempts == 2

    asyncio.run(scenario())


def test_draft_cleanup_failure_is_ignored(clock):
    async def scenario():
        backend = ScriptedBackend(
            {
                SUBMIT: httpx.Response(201, json={"submission": {"id": "sub-1"}}),
                DELETE: httpx.Response(500, json={"error": "Failed to delete quiz progress"}),
            }
        )
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        async with scripted_api(backend) as api:
            guard, _ = make_guard(api, cache, clock)
            outcome = await guard.submit({"q1": "A"})
            await guard.tasks.drain()

        assert outcome.status is SubmissionStatus.SUBMITTED
        assert len(backend.calls_to(*DELETE)) == 1

    asyncio.run(scenario())


def test_submission_cancels_pending_draft_save(clock):
    async def scenario():
        store = build_store()
        cache = LocalCache(MemoryStore(), MATERIAL_ID)
        async with make_api(store) as api:
            guard, persistence = make_guard(api, cache, clock, delay=0.05)
            persistence.record({"q1": "A"})
            outcome = await guard.submit({"q1": "A"})
            await asyncio.sleep(0.15)
            await guard.tasks.drain()

        assert outcome.status is SubmissionStatus.SUBMITTED
        assert store.save_calls == 0
        assert (STUDENT_ID, MATERIAL_ID) not in store.drafts

    asyncio.run(scenario())


def test_submit_payload_shape(clock):
    async def scenario():
        backend = ScriptedBackend(
            {SUBMIT: httpx.Response(201, json={"submission": {"id": 7}})}
        )
        async with scripted_api(backend) as api:
            guard, _ = make_guard(api, LocalCache(MemoryStore(), MATERIAL_ID), clock)
            outcome = await guard.submit({"q1": "A"})
            await guard.tasks.drain()

        body = json.loads(backend.calls_to(*SUBMIT)[0].content)
        assert body == {
            "student_id": STUDENT_ID,
            "material_id": MATERIAL_ID,
            "quiz_id": QUIZ_ID,
            "answers": {"q1": "A"},
        }
        assert outcome.submission_id == "7"

    asyncio.run(scenario())
