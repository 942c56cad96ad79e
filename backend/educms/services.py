"""Business logic services built on the unit of work.

`StudentService` holds no persistence state of its own: every read and
write goes through the `UnitOfWork` it is given. It validates input,
composes filters, aggregates statistics and renders the CSV export.
"""

import csv
import io
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

from sqlalchemy import or_
from sqlmodel import col

from .errors import InvalidArgumentError, StudentValidationError
from .models import Student, StudentStatus, utc_now
from .repositories import Predicate, PredicateBuilder
from .schemas import PagedResult, StudentStatistics
from .unit_of_work import UnitOfWork

logger = logging.getLogger("educms.services")

STUDENT_ID_MAX_LENGTH = 20

CSV_HEADER = [
    "Student ID", "Name", "Email", "Grade", "Section",
    "Status", "Enrollment Date", "Phone", "Address",
]

# Fields copied from the input on update; id, created_at,
# enrollment_date and avatar_url stay as stored.
UPDATABLE_FIELDS = (
    "student_id", "name", "email", "grade", "section", "status",
    "phone_number", "address", "date_of_birth", "emergency_contact", "notes",
)

StatusArg = Optional[Union[StudentStatus, str]]


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _as_status(status: StatusArg) -> Optional[StudentStatus]:
    if status is None or isinstance(status, StudentStatus):
        return status
    return StudentStatus(status)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def build_student_filter(
    search_term: Optional[str] = None,
    grade: Optional[str] = None,
    status: StatusArg = None,
) -> Optional[Predicate]:
    """Compose the listing/export filter.

    The search term matches name, email or student id case-insensitively
    as a substring; grade and status must match exactly. Whatever is
    supplied is AND-ed together.
    """
    status = _as_status(status)
    builder = PredicateBuilder()
    # a blank term disables the search; any other term is matched as given
    builder.add_if(not _is_blank(search_term), lambda: or_(
        col(Student.name).icontains(search_term, autoescape=True),
        col(Student.email).icontains(search_term, autoescape=True),
        col(Student.student_id).icontains(search_term, autoescape=True),
    ))
    builder.add_if(not _is_blank(grade), lambda: col(Student.grade) == grade)
    builder.add_if(status is not None, lambda: col(Student.status) == status)
    return builder.build()


def students_to_csv(students: List[Student]) -> bytes:
    """Render students as UTF-8 CSV with a single header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADER)
    for s in students:
        writer.writerow([
            s.student_id,
            s.name,
            s.email,
            s.grade,
            s.section,
            s.status.value if s.status else "",
            s.enrollment_date.strftime("%Y-%m-%d") if s.enrollment_date else "",
            s.phone_number or "",
            s.address or "",
        ])
    return buffer.getvalue().encode("utf-8")


class StudentService:
    """Student management rules on top of a `UnitOfWork`."""

    def __init__(self, unit_of_work: UnitOfWork, clock: Callable[[], Any] = utc_now):
        if unit_of_work is None:
            raise InvalidArgumentError("unit_of_work")
        self.uow = unit_of_work
        self._clock = clock

    @property
    def _students(self):
        return self.uow.students

    async def get_students(
        self,
        page_number: int = 1,
        page_size: int = 20,
        search_term: Optional[str] = None,
        grade: Optional[str] = None,
        status: StatusArg = None,
    ) -> PagedResult:
        """Return a page of students ordered by name, then student id."""
        predicate = build_student_filter(search_term, grade, status)
        return await self._students.get_paged(
            page_number,
            page_size,
            predicate,
            order_by=(col(Student.name).asc(), col(Student.student_id).asc()),
        )

    async def get_student_by_id(self, id: uuid.UUID) -> Optional[Student]:
        return await self._students.get_by_id(id)

    async def get_student_by_student_id(self, student_id: str) -> Optional[Student]:
        if _is_blank(student_id):
            return None
        return await self._students.find_first(col(Student.student_id) == student_id)

    async def create_student(self, student: Student) -> Student:
        """Validate, stage and save a new student.

        Raises `StudentValidationError` listing every violated rule.
        """
        if student is None:
            raise InvalidArgumentError("student")
        await self._validate(student)
        created = await self._students.add(student)
        await self.uow.save_changes()
        logger.info("Created student %s (%s)", created.student_id, created.id)
        return created

    async def update_student(self, id: uuid.UUID, student: Student) -> Optional[Student]:
        """Copy business fields from `student` onto the stored record.

        Returns None when no student with `id` exists.
        """
        if student is None:
            raise InvalidArgumentError("student")
        existing = await self._students.get_by_id(id)
        if existing is None:
            return None
        await self._validate(student, exclude_id=id)
        for field in UPDATABLE_FIELDS:
            setattr(existing, field, getattr(student, field))
        await self._students.update(existing)
        await self.uow.save_changes()
        logger.info("Updated student %s (%s)", existing.student_id, existing.id)
        return existing

    async def delete_student(self, id: uuid.UUID) -> bool:
        student = await self._students.get_by_id(id)
        if student is None:
            return False
        await self._students.soft_delete(student)
        await self.uow.save_changes()
        logger.info("Soft-deleted student %s (%s)", student.student_id, student.id)
        return True

    async def update_student_avatar(self, id: uuid.UUID, avatar_url: str) -> bool:
        student = await self._students.get_by_id(id)
        if student is None:
            return False
        student.avatar_url = avatar_url
        await self._students.update(student)
        await self.uow.save_changes()
        return True

    async def get_student_statistics(self) -> StudentStatistics:
        """Aggregate counts over every student that is not soft-deleted.

        Loads the whole table and counts in one pass; fine for a single
        school, but large datasets should push the grouping into SQL.
        """
        students = await self._students.get_all()
        now = _naive_utc(self._clock())
        start_of_month = datetime(now.year, now.month, 1)
        start_of_year = datetime(now.year, 1, 1)

        by_grade: Counter = Counter()
        by_status: Counter = Counter()
        this_month = 0
        this_year = 0
        for s in students:
            by_grade[s.grade] += 1
            by_status[s.status] += 1
            if s.enrollment_date is None:
                continue
            enrolled = _naive_utc(s.enrollment_date)
            if enrolled >= start_of_month:
                this_month += 1
            if enrolled >= start_of_year:
                this_year += 1

        return StudentStatistics(
            total_students=len(students),
            active_students=by_status[StudentStatus.ACTIVE],
            inactive_students=by_status[StudentStatus.INACTIVE],
            suspended_students=by_status[StudentStatus.SUSPENDED],
            graduated_students=by_status[StudentStatus.GRADUATED],
            transferred_students=by_status[StudentStatus.TRANSFERRED],
            withdrawn_students=by_status[StudentStatus.WITHDRAWN],
            students_by_grade=dict(by_grade),
            students_by_status=dict(by_status),
            new_students_this_month=this_month,
            new_students_this_year=this_year,
        )

    async def is_student_id_unique(self, student_id: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        """Return True when no other live student uses `student_id`.

        Blank input is never unique.
        """
        if _is_blank(student_id):
            return False
        predicate = (
            PredicateBuilder()
            .add(col(Student.student_id) == student_id)
            .add_if(exclude_id is not None, lambda: col(Student.id) != exclude_id)
            .build()
        )
        return not await self._students.any(predicate)

    async def is_email_unique(self, email: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        """Return True when no other live student uses `email`.

        Blank input is never unique.
        """
        if _is_blank(email):
            return False
        predicate = (
            PredicateBuilder()
            .add(col(Student.email) == email)
            .add_if(exclude_id is not None, lambda: col(Student.id) != exclude_id)
            .build()
        )
        return not await self._students.any(predicate)

    async def export_students_to_csv(
        self,
        search_term: Optional[str] = None,
        grade: Optional[str] = None,
        status: StatusArg = None,
    ) -> bytes:
        """Export the filtered students, ordered by name, as CSV bytes."""
        predicate = build_student_filter(search_term, grade, status)
        students = await self._students.find(
            predicate,
            order_by=(col(Student.name).asc(), col(Student.student_id).asc()),
        )
        logger.info("Exporting %d students to CSV", len(students))
        return students_to_csv(students)

    async def _validate(self, student: Student, exclude_id: Optional[uuid.UUID] = None) -> None:
        """Collect every rule violation, then raise once."""
        errors: List[str] = []

        if _is_blank(student.student_id):
            errors.append("Student ID is required.")
        elif len(student.student_id) > STUDENT_ID_MAX_LENGTH:
            errors.append(f"Student ID must be at most {STUDENT_ID_MAX_LENGTH} characters.")
        if _is_blank(student.name):
            errors.append("Name is required.")
        if _is_blank(student.email):
            errors.append("Email is required.")
        if _is_blank(student.grade):
            errors.append("Grade is required.")
        if _is_blank(student.section):
            errors.append("Section is required.")

        if student.status is None:
            student.status = StudentStatus.ACTIVE
        else:
            try:
                student.status = _as_status(student.status)
            except ValueError:
                errors.append(f"Status {student.status!r} is not a valid student status.")

        if not _is_blank(student.student_id):
            if not await self.is_student_id_unique(student.student_id, exclude_id):
                errors.append(f"Student ID '{student.student_id}' must be unique.")
        if not _is_blank(student.email):
            if not await self.is_email_unique(student.email, exclude_id):
                errors.append(f"Email '{student.email}' must be unique.")

        if errors:
            logger.info("Student validation failed: %s", errors)
            raise StudentValidationError(errors)
