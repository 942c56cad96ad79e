from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from educms.database import unit_of_work
from educms.errors import (
    InvalidArgumentError,
    NoTransactionError,
    TransactionAlreadyInProgressError,
    UnitOfWorkDisposedError,
)
from educms.models import Student
from educms.unit_of_work import UnitOfWork

from conftest import make_student

pytestmark = pytest.mark.anyio


async def count_students(session_factory):
    async with unit_of_work(session_factory) as other:
        return await other.students.count()


async def test_save_changes_commits_and_counts_rows(uow, session_factory):
    a, b = await uow.students.add_range([make_student("STU001"), make_student("STU002")])
    assert await uow.save_changes() == 2
    assert await count_students(session_factory) == 2

    a.name = "Changed"
    await uow.students.update(a)
    assert await uow.save_changes() == 1
    assert await uow.save_changes() == 0


async def test_nothing_is_durable_before_save(uow, session_factory):
    await uow.students.add(make_student())
    assert await uow.students.count() == 1
    assert await count_students(session_factory) == 0


async def test_rollback_discards_saved_changes(uow, session_factory):
    await uow.begin_transaction()
    assert uow.in_transaction
    await uow.students.add(make_student())
    assert await uow.save_changes() == 1
    await uow.rollback_transaction()

    assert not uow.in_transaction
    assert await uow.students.count() == 0
    assert await count_students(session_factory) == 0


async def test_commit_makes_transaction_durable(uow, session_factory):
    await uow.begin_transaction()
    await uow.students.add(make_student("STU001"))
    await uow.save_changes()
    await uow.announcements.count()
    await uow.students.add(make_student("STU002"))
    await uow.save_changes()
    assert await count_students(session_factory) == 0

    await uow.commit_transaction()
    assert not uow.in_transaction
    assert await count_students(session_factory) == 2


async def test_begin_after_reads_reuses_open_transaction(uow, session_factory):
    await uow.students.count()
    await uow.begin_transaction()
    await uow.students.add(make_student())
    await uow.save_changes()
    await uow.commit_transaction()
    assert await count_students(session_factory) == 1


async def test_transaction_state_errors(uow):
    with pytest.raises(NoTransactionError):
        await uow.commit_transaction()
    with pytest.raises(NoTransactionError):
        await uow.rollback_transaction()

    await uow.begin_transaction()
    with pytest.raises(TransactionAlreadyInProgressError):
        await uow.begin_transaction()
    await uow.rollback_transaction()


async def test_failed_commit_rolls_back_and_reraises(uow):
    failing = AsyncMock()
    failing.commit.side_effect = RuntimeError("disk full")
    uow._transaction = failing

    with pytest.raises(RuntimeError, match="disk full"):
        await uow.commit_transaction()
    failing.rollback.assert_awaited_once()
    assert not uow.in_transaction


async def test_failed_rollback_after_failed_commit_keeps_commit_error(uow):
    failing = AsyncMock()
    failing.commit.side_effect = RuntimeError("disk full")
    failing.rollback.side_effect = ConnectionError("connection lost")
    uow._transaction = failing

    with pytest.raises(RuntimeError, match="disk full"):
        await uow.commit_transaction()
    failing.rollback.assert_awaited_once()
    assert not uow.in_transaction


async def test_failed_save_rolls_back_and_reraises(uow):
    await uow.students.add(make_student("STU001"))
    await uow.save_changes()

    await uow.students.add(make_student("STU001", email="other@school.edu"))
    with pytest.raises(IntegrityError):
        await uow.save_changes()

    # the session is usable again after the failure
    assert await uow.students.count() == 1


async def test_business_keys_can_be_reused_after_soft_delete(uow):
    first = await uow.students.add(make_student("STU001"))
    await uow.save_changes()
    await uow.students.soft_delete(first)
    await uow.save_changes()

    await uow.students.add(make_student("STU001"))
    assert await uow.save_changes() == 1
    assert await uow.students.count(col(Student.student_id) == "STU001") == 1


async def test_deleted_at_follows_is_deleted(uow):
    s = await uow.students.add(make_student())
    await uow.save_changes()

    s.is_deleted = True
    await uow.students.update(s)
    await uow.save_changes()
    assert s.deleted_at is not None

    s.is_deleted = False
    await uow.students.update(s)
    await uow.save_changes()
    assert s.deleted_at is None
    assert await uow.students.get_by_id(s.id) is s


async def test_dispose_is_idempotent_and_final(session_factory):
    uow = UnitOfWork(session_factory())
    await uow.begin_transaction()
    await uow.students.add(make_student())
    await uow.save_changes()

    await uow.dispose()
    await uow.dispose()
    assert uow.disposed
    assert not uow.in_transaction
    assert await count_students(session_factory) == 0

    with pytest.raises(UnitOfWorkDisposedError):
        await uow.save_changes()
    with pytest.raises(UnitOfWorkDisposedError):
        await uow.begin_transaction()


async def test_context_manager_disposes_on_error(session_factory):
    with pytest.raises(ValueError):
        async with UnitOfWork(session_factory()) as uow:
            await uow.begin_transaction()
            raise ValueError("boom")
    assert uow.disposed
    assert not uow.in_transaction


def test_requires_a_session():
    with pytest.raises(InvalidArgumentError):
        UnitOfWork(None)
