"""Pydantic result shapes returned by repositories and services.

These keep the outputs of the persistence layer as plain data so
callers never have to touch session or query objects.
"""

import math
from typing import Dict, Generic, List, TypeVar

from pydantic import BaseModel, Field

from .models import StudentStatus

T = TypeVar("T")


class PagedResult(BaseModel, Generic[T]):
    """One page of a filtered, ordered result set.

    `total_count` counts every match of the filter, not just the rows
    on this page.
    """
    items: List[T] = Field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @property
    def has_previous_page(self) -> bool:
        return self.page_number > 1

    @property
    def has_next_page(self) -> bool:
        return self.page_number < self.total_pages


class StudentStatistics(BaseModel):
    """Aggregate counts over all students that are not soft-deleted."""
    total_students: int = 0
    active_students: int = 0
    inactive_students: int = 0
    suspended_students: int = 0
    graduated_students: int = 0
    transferred_students: int = 0
    withdrawn_students: int = 0
    students_by_grade: Dict[str, int] = Field(default_factory=dict)
    students_by_status: Dict[StudentStatus, int] = Field(default_factory=dict)
    new_students_this_month: int = 0
    new_students_this_year: int = 0
