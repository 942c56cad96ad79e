"""Generic repository over any `BaseEntity` table.

A single `Repository` class serves every entity type: it is built with
the session it shares with its unit of work and the table class it
operates on. Mutating methods only stage changes in the session;
nothing is durable until `UnitOfWork.save_changes()` commits.

Every read applies the explicit default predicate ``is_deleted ==
False``. The few callers that need soft-deleted rows pass
``include_deleted=True``.
"""

import logging
import uuid
from typing import Any, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import and_, func
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from .errors import InvalidArgumentError
from .models import BaseEntity, utc_now
from .schemas import PagedResult

logger = logging.getLogger("educms.repositories")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

ModelType = TypeVar("ModelType", bound=BaseEntity)
Predicate = ColumnElement[bool]


class PredicateBuilder:
    """Collect independent filter conditions and AND them together.

        builder = PredicateBuilder()
        builder.add(Student.grade == "10").add_if(status, lambda: Student.status == status)
        predicate = builder.build()

    `build()` returns ``None`` when nothing was added so the result can
    be passed straight to the repository's optional `predicate`.
    """

    def __init__(self):
        self._conditions: List[Predicate] = []

    def add(self, condition: Predicate) -> "PredicateBuilder":
        self._conditions.append(condition)
        return self

    def add_if(self, enabled: Any, factory: Callable[[], Predicate]) -> "PredicateBuilder":
        """Add ``factory()`` only when `enabled` is truthy."""
        if enabled:
            self._conditions.append(factory())
        return self

    def __len__(self) -> int:
        return len(self._conditions)

    def build(self) -> Optional[Predicate]:
        if not self._conditions:
            return None
        if len(self._conditions) == 1:
            return self._conditions[0]
        return and_(*self._conditions)


class Repository(Generic[ModelType]):
    """CRUD, filtering and paging for one table."""

    def __init__(
        self,
        session: AsyncSession,
        model_class: type,
        clock: Callable[[], Any] = utc_now,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        if session is None:
            raise InvalidArgumentError("session")
        self.session = session
        self.model_class = model_class
        self.model_name = model_class.__name__
        self._clock = clock
        self._id_factory = id_factory

    # -- query helpers -------------------------------------------------

    def _not_deleted(self) -> Predicate:
        return col(self.model_class.is_deleted) == False  # noqa: E712

    def _select(self, predicate: Optional[Predicate] = None, include_deleted: bool = False):
        stmt = select(self.model_class)
        if not include_deleted:
            stmt = stmt.where(self._not_deleted())
        if predicate is not None:
            stmt = stmt.where(predicate)
        return stmt

    def _default_order(self) -> Sequence[Any]:
        # newest first; id breaks ties between rows added in one batch
        return (col(self.model_class.created_at).desc(), col(self.model_class.id).desc())

    # -- reads ---------------------------------------------------------

    async def get_by_id(self, id: uuid.UUID, include_deleted: bool = False) -> Optional[ModelType]:
        """Return the row with primary key `id` or `None`."""
        stmt = self._select(col(self.model_class.id) == id, include_deleted=include_deleted)
        instance = (await self.session.exec(stmt)).first()
        logger.debug("%s %s %s", self.model_name, id, "found" if instance else "not found")
        return instance

    async def get_all(self, predicate: Optional[Predicate] = None) -> List[ModelType]:
        """Materialize every matching row.

        Meant for small sets (statistics, exports); use `get_paged` for
        anything user-facing.
        """
        rows = list((await self.session.exec(self._select(predicate))).all())
        logger.debug("Retrieved %d %s rows", len(rows), self.model_name)
        return rows

    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        predicate: Optional[Predicate] = None,
        order_by: Optional[Sequence[Any]] = None,
    ) -> PagedResult:
        """Return one page of matching rows plus the total match count.

        `page_number` below 1 becomes 1, `page_size` below 1 becomes
        `DEFAULT_PAGE_SIZE` and anything above `MAX_PAGE_SIZE` is capped.
        Without `order_by` rows come newest first.
        """
        if page_number < 1:
            page_number = 1
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE
        if page_size > MAX_PAGE_SIZE:
            page_size = MAX_PAGE_SIZE

        total_count = await self.count(predicate)
        stmt = (
            self._select(predicate)
            .order_by(*(order_by or self._default_order()))
            .offset((page_number - 1) * page_size)
            .limit(page_size)
        )
        items = list((await self.session.exec(stmt)).all())
        logger.debug(
            "%s page %d/%d: %d of %d rows",
            self.model_name, page_number, page_size, len(items), total_count,
        )
        return PagedResult(items=items, total_count=total_count, page_number=page_number, page_size=page_size)

    async def find(self, predicate: Optional[Predicate], order_by: Optional[Sequence[Any]] = None) -> List[ModelType]:
        stmt = self._select(predicate)
        if order_by:
            stmt = stmt.order_by(*order_by)
        return list((await self.session.exec(stmt)).all())

    async def find_first(self, predicate: Predicate) -> Optional[ModelType]:
        return (await self.session.exec(self._select(predicate))).first()

    async def any(self, predicate: Predicate) -> bool:
        """Return True if at least one row matches `predicate`."""
        stmt = select(col(self.model_class.id)).where(self._not_deleted(), predicate).limit(1)
        return (await self.session.exec(stmt)).first() is not None

    async def count(self, predicate: Optional[Predicate] = None) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(self._not_deleted())
        if predicate is not None:
            stmt = stmt.where(predicate)
        return (await self.session.exec(stmt)).one() or 0

    # -- staged mutations ----------------------------------------------

    async def _attach(self, entity: ModelType) -> ModelType:
        # detached copies are merged onto the tracked row
        if entity in self.session:
            return entity
        return await self.session.merge(entity)

    async def add(self, entity: ModelType) -> ModelType:
        """Stage `entity` for insertion.

        A fresh id and both timestamps are assigned here; whatever the
        caller put in those fields is discarded.
        """
        if entity is None:
            raise InvalidArgumentError("entity")
        now = self._clock()
        entity.id = self._id_factory()
        entity.created_at = now
        entity.updated_at = now
        self.session.add(entity)
        logger.debug("Staged new %s %s", self.model_name, entity.id)
        return entity

    async def add_range(self, entities: Iterable[ModelType]) -> List[ModelType]:
        """Stage several entities; they all share one creation timestamp."""
        if entities is None:
            raise InvalidArgumentError("entities")
        items = list(entities)
        if any(e is None for e in items):
            raise InvalidArgumentError("entities item")
        now = self._clock()
        for entity in items:
            entity.id = self._id_factory()
            entity.created_at = now
            entity.updated_at = now
        self.session.add_all(items)
        logger.debug("Staged %d new %s rows", len(items), self.model_name)
        return items

    async def update(self, entity: ModelType) -> ModelType:
        """Stage changes to `entity` and refresh `updated_at`.

        `created_at` is left alone; the unit of work reverts any attempt
        to change it on flush.
        """
        if entity is None:
            raise InvalidArgumentError("entity")
        entity = await self._attach(entity)
        entity.updated_at = self._clock()
        logger.debug("Staged update of %s %s", self.model_name, entity.id)
        return entity

    async def delete(self, entity: ModelType) -> None:
        """Stage physical removal of `entity`."""
        if entity is None:
            raise InvalidArgumentError("entity")
        if entity in self.session.new:
            self.session.expunge(entity)
        else:
            await self.session.delete(entity)
        logger.debug("Staged delete of %s %s", self.model_name, entity.id)

    async def delete_by_id(self, id: uuid.UUID) -> bool:
        entity = await self.get_by_id(id)
        if entity is None:
            return False
        await self.delete(entity)
        return True

    async def soft_delete(self, entity: ModelType) -> ModelType:
        """Flag `entity` as deleted and keep the row.

        `deleted_at` is stamped only on the first transition; repeating
        the call on a deleted row just refreshes `updated_at`.
        """
        if entity is None:
            raise InvalidArgumentError("entity")
        entity = await self._attach(entity)
        now = self._clock()
        if not entity.is_deleted:
            entity.is_deleted = True
            entity.deleted_at = now
        entity.updated_at = now
        logger.debug("Staged soft delete of %s %s", self.model_name, entity.id)
        return entity

    async def soft_delete_by_id(self, id: uuid.UUID) -> bool:
        entity = await self.get_by_id(id, include_deleted=True)
        if entity is None:
            return False
        await self.soft_delete(entity)
        return True
