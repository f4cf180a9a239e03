import asyncio
import logging

from quiz_session.logger import NO_SESSION, SessionContextFilter, bind_session, current_session


def make_record():
    return logging.LogRecord("quiz_session.test", logging.INFO, __file__, 1, "hello", None, None)


def test_records_carry_the_bound_session():
    async def scenario():
        bind_session("student-1", "material-1")
        record = make_record()
        SessionContextFilter().filter(record)
        return record.session

    assert asyncio.run(scenario()) == "student-1/material-1"


def test_spawned_tasks_inherit_the_session():
    async def read_tag():
        await asyncio.sleep(0)
        return current_session()

    async def scenario():
        bind_session("student-2", "material-9")
        return await asyncio.create_task(read_tag())

    assert asyncio.run(scenario()) == "student-2/material-9"


def test_binding_does_not_leak_between_event_loops():
    async def scenario():
        bind_session("student-3", "material-3")

    asyncio.run(scenario())
    record = make_record()
    SessionContextFilter().filter(record)
    assert record.session == NO_SESSION
