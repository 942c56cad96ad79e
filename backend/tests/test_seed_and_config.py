import pytest
from sqlmodel import col

from educms.config import DEFAULT_DATABASE_URL, Settings
from educms.models import Announcement, Student
from educms.seed import DEMO_STUDENTS, WELCOME_TITLE, seed_demo_data


@pytest.mark.anyio
async def test_seed_is_idempotent(uow):
    assert await seed_demo_data(uow) == len(DEMO_STUDENTS) + 1
    assert await seed_demo_data(uow) == 0

    assert await uow.students.count() == len(DEMO_STUDENTS)
    assert await uow.announcements.count(col(Announcement.title) == WELCOME_TITLE) == 1

    john = await uow.students.find_first(col(Student.student_id) == "STU001")
    assert john.name == "John Doe"
    assert (john.created_at - john.enrollment_date).days == 182


@pytest.mark.anyio
async def test_seed_only_adds_missing_rows(uow):
    await uow.students.add(Student(
        student_id="STU002", name="Jane Smith", email="jane.smith@school.edu", grade="11", section="B",
    ))
    await uow.save_changes()
    assert await seed_demo_data(uow) == 2
    assert await uow.students.count() == 2


def test_settings_defaults(monkeypatch):
    for name in ("ENV", "DATABASE_URL", "DB_ECHO", "LOG_LEVEL", "SEED_DEMO_DATA"):
        monkeypatch.delenv(name, raising=False)
    s = Settings()
    assert s.ENV == "dev"
    assert s.DATABASE_URL == DEFAULT_DATABASE_URL
    assert s.DB_ECHO is False
    assert s.LOG_LEVEL == "INFO"
    assert s.SEED_DEMO_DATA is False


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ENV", "Prod")
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://edu:secret@db/educms")
    monkeypatch.setenv("DB_ECHO", "TRUE")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("SEED_DEMO_DATA", "true")
    s = Settings()
    assert s.ENV == "prod"
    assert s.DB_ECHO is True
    assert s.LOG_LEVEL == "DEBUG"
    assert s.SEED_DEMO_DATA is True


def test_settings_reject_sync_driver(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://edu@db/educms")
    with pytest.raises(RuntimeError, match="async driver"):
        Settings()


def test_settings_require_explicit_url_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="non-dev"):
        Settings()
