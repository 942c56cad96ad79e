from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from educms.database import build_session_factory, create_db_and_tables
from educms.models import Student
from educms.unit_of_work import UnitOfWork


class TickingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start=datetime(2026, 10, 16, 12, 0, 0)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


def make_student(student_id="STU001", **overrides):
    fields = dict(
        student_id=student_id,
        name=f"Student {student_id}",
        email=f"{student_id.lower()}@school.edu",
        grade="10",
        section="A",
    )
    fields.update(overrides)
    return Student(**fields)


# Run async tests and fixtures on asyncio only
@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_db_and_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def uow(session_factory, clock):
    async with UnitOfWork(session_factory(), clock=clock) as unit:
        yield unit
