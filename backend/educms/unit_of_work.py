"""Unit of work: one session, every repository, one save boundary.

All repositories are built eagerly over the same `AsyncSession`, so
changes staged through one are visible to queries made through another
before anything is saved. `save_changes()` is the only place where
staged work becomes durable (or, inside an explicit transaction,
`commit_transaction()`).
"""

import logging
from itertools import chain
from typing import Any, Callable, Optional, Set, Tuple

from sqlalchemy import event, inspect
from sqlmodel.ext.asyncio.session import AsyncSession

from .errors import (
    InvalidArgumentError,
    NoTransactionError,
    TransactionAlreadyInProgressError,
    UnitOfWorkDisposedError,
)
from .models import Announcement, AnnouncementAttachment, BaseEntity, Document, Student, utc_now
from .repositories import Repository

logger = logging.getLogger("educms.unit_of_work")


class UnitOfWork:
    """Coordinate repositories that share one persistence context.

    Use it as an async context manager so the session (and any open
    transaction) is released on every exit path:

        async with UnitOfWork(session) as uow:
            await uow.students.add(student)
            await uow.save_changes()
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], Any] = utc_now):
        if session is None:
            raise InvalidArgumentError("session")
        self._session = session
        self._clock = clock
        self._transaction = None
        self._disposed = False
        self._written: Set[Tuple[str, Any]] = set()

        self.students: Repository[Student] = Repository(session, Student, clock=clock)
        self.announcements: Repository[Announcement] = Repository(session, Announcement, clock=clock)
        self.documents: Repository[Document] = Repository(session, Document, clock=clock)
        self.announcement_attachments: Repository[AnnouncementAttachment] = Repository(
            session, AnnouncementAttachment, clock=clock
        )

        self._listeners = (
            ("before_flush", self._before_flush),
            ("after_flush", self._after_flush),
        )
        for name, fn in self._listeners:
            event.listen(session.sync_session, name, fn)

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def clock(self) -> Callable[[], Any]:
        return self._clock

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_active(self):
        if self._disposed:
            raise UnitOfWorkDisposedError()

    # -- flush hooks ---------------------------------------------------

    def _before_flush(self, session, flush_context, instances):
        """Keep the soft delete pair consistent and `created_at` frozen."""
        for obj in chain(session.new, session.dirty):
            if not isinstance(obj, BaseEntity):
                continue
            if obj.is_deleted and obj.deleted_at is None:
                obj.deleted_at = self._clock()
            elif not obj.is_deleted and obj.deleted_at is not None:
                obj.deleted_at = None
            if obj in session.new:
                continue
            history = inspect(obj).attrs.created_at.history
            if history.deleted:
                obj.created_at = history.deleted[0]

    def _after_flush(self, session, flush_context):
        # new/dirty/deleted still describe what this flush wrote
        for obj in chain(session.new, session.dirty, session.deleted):
            if obj in session.dirty and not session.is_modified(obj):
                continue
            self._written.add((type(obj).__name__, getattr(obj, "id", None) or id(obj)))

    # -- save / transactions -------------------------------------------

    async def save_changes(self) -> int:
        """Write all staged changes and return the number of rows affected.

        Outside an explicit transaction the changes are committed here.
        Inside one they are flushed and become durable on
        `commit_transaction()`. Failures are logged and re-raised
        unchanged; nothing is retried.
        """
        self._ensure_active()
        try:
            await self._session.flush()
            affected = len(self._written)
            if self._transaction is None:
                await self._session.commit()
        except Exception as e:
            logger.error("Saving changes failed: %s", e)
            if self._transaction is None:
                await self._session.rollback()
            raise
        finally:
            self._written.clear()
        logger.debug("Saved %d rows", affected)
        return affected

    async def begin_transaction(self) -> None:
        self._ensure_active()
        if self._transaction is not None:
            raise TransactionAlreadyInProgressError()
        if self._session.in_transaction():
            self._transaction = self._session.get_transaction()
        else:
            self._transaction = await self._session.begin()
        logger.debug("Transaction started")

    async def commit_transaction(self) -> None:
        """Commit the open transaction.

        A failed commit is rolled back before the error is re-raised, so
        the transaction handle is always released.
        """
        self._ensure_active()
        if self._transaction is None:
            raise NoTransactionError()
        try:
            await self._transaction.commit()
            logger.debug("Transaction committed")
        except Exception as e:
            logger.error("Commit failed, rolling back: %s", e)
            try:
                await self._transaction.rollback()
            except Exception as rollback_error:
                logger.error("Rollback after failed commit also failed: %s", rollback_error)
            raise
        finally:
            self._transaction = None
            self._written.clear()

    async def rollback_transaction(self) -> None:
        self._ensure_active()
        if self._transaction is None:
            raise NoTransactionError()
        try:
            await self._transaction.rollback()
            logger.debug("Transaction rolled back")
        finally:
            self._transaction = None
            self._written.clear()

    # -- lifetime ------------------------------------------------------

    async def dispose(self) -> None:
        """Release the transaction handle and the session exactly once."""
        if self._disposed:
            return
        self._disposed = True
        try:
            if self._transaction is not None:
                try:
                    await self._transaction.rollback()
                finally:
                    self._transaction = None
        finally:
            for name, fn in self._listeners:
                if event.contains(self._session.sync_session, name, fn):
                    event.remove(self._session.sync_session, name, fn)
            await self._session.close()
            logger.debug("Unit of work disposed")

    async def __aenter__(self) -> "UnitOfWork":
        self._ensure_active()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        await self.dispose()
        return None
