"""SQLModel data models.

This module defines the shared `BaseEntity` shape and the domain tables
built on it. Every table inherits identity, timestamps and the soft
delete pair (`is_deleted` / `deleted_at`) from `BaseEntity`.

Timestamps are naive UTC datetimes in plain `DateTime` columns, declared
per field so values read back from SQLite compare cleanly with values
produced by `utc_now`.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Index, event, text
from sqlmodel import Field, Relationship, SQLModel


def utc_now() -> datetime:
    """Current UTC wall-clock time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseEntity(SQLModel):
    """Columns shared by every table.

    `id`, `created_at` and `updated_at` are assigned by the repository
    when the entity is added; values supplied by callers are overwritten.
    `deleted_at` is set if and only if `is_deleted` is true.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=DateTime())


def _active_rows_unique(name: str, column: str) -> Index:
    # uniqueness only among rows that are not soft-deleted
    return Index(
        name,
        column,
        unique=True,
        sqlite_where=text("is_deleted = 0"),
        postgresql_where=text("is_deleted = false"),
    )


class StudentStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"
    GRADUATED = "Graduated"
    TRANSFERRED = "Transferred"
    WITHDRAWN = "Withdrawn"


class Student(BaseEntity, table=True):
    """An enrolled student.

    `student_id` and `email` are business keys: unique among students
    that are not soft-deleted.
    """
    __tablename__ = "students"
    __table_args__ = (
        _active_rows_unique("ix_students_student_id_active", "student_id"),
        _active_rows_unique("ix_students_email_active", "email"),
    )

    student_id: str = Field(max_length=20)
    name: str = Field(max_length=200)
    email: str = Field(max_length=256)
    grade: str = Field(max_length=10, index=True)
    section: str = Field(max_length=10)
    # filled with the creation time when left empty
    enrollment_date: Optional[datetime] = Field(default=None, index=True, nullable=False, sa_type=DateTime())
    status: StudentStatus = Field(default=StudentStatus.ACTIVE, index=True)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=500)
    date_of_birth: Optional[date] = None
    emergency_contact: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)


@event.listens_for(Student, "before_insert")
def _default_enrollment_date(mapper, connection, target):
    if target.enrollment_date is None:
        target.enrollment_date = target.created_at


class AnnouncementCategory(str, Enum):
    GENERAL = "General"
    ACADEMIC = "Academic"
    ADMINISTRATIVE = "Administrative"
    EVENTS = "Events"
    EMERGENCY = "Emergency"
    MAINTENANCE = "Maintenance"
    POLICY = "Policy"


class AnnouncementPriority(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    CRITICAL = "Critical"


class Announcement(BaseEntity, table=True):
    """A system announcement with optional file attachments."""
    __tablename__ = "announcements"

    title: str = Field(max_length=200)
    content: str
    category: AnnouncementCategory = AnnouncementCategory.GENERAL
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    author_id: str = ""
    author_name: str = ""
    is_published: bool = True
    publish_date: Optional[datetime] = Field(default=None, sa_type=DateTime())
    expiry_date: Optional[datetime] = Field(default=None, sa_type=DateTime())
    target_audience: Optional[str] = None
    is_pinned: bool = False
    view_count: int = 0
    attachments: List["AnnouncementAttachment"] = Relationship(
        back_populates="announcement",
        sa_relationship_kwargs={"lazy": "selectin"},
    )


class AnnouncementAttachment(BaseEntity, table=True):
    """A file attached to an `Announcement`."""
    __tablename__ = "announcement_attachments"

    announcement_id: uuid.UUID = Field(foreign_key="announcements.id", index=True)
    file_name: str
    file_url: str
    content_type: str = ""
    file_size: int = 0
    description: Optional[str] = None
    announcement: Optional[Announcement] = Relationship(
        back_populates="attachments",
        sa_relationship_kwargs={"lazy": "selectin"},
    )


class DocumentCategory(str, Enum):
    GENERAL = "General"
    ACADEMIC = "Academic"
    ADMINISTRATIVE = "Administrative"
    POLICY = "Policy"
    FORMS = "Forms"
    REPORTS = "Reports"
    PRESENTATIONS = "Presentations"
    IMAGES = "Images"
    VIDEOS = "Videos"
    AUDIO = "Audio"


class DocumentAccessLevel(str, Enum):
    PUBLIC = "Public"
    INTERNAL = "Internal"
    RESTRICTED = "Restricted"
    CONFIDENTIAL = "Confidential"


class Document(BaseEntity, table=True):
    """An uploaded document in the shared library."""
    __tablename__ = "documents"

    name: str = Field(max_length=200)
    description: Optional[str] = None
    file_name: str
    file_url: str
    content_type: str = ""
    file_size: int = 0
    category: DocumentCategory = DocumentCategory.GENERAL
    access_level: DocumentAccessLevel = DocumentAccessLevel.PUBLIC
    uploaded_by_id: str = ""
    uploaded_by_name: str = ""
    download_count: int = 0
    tags: Optional[str] = None
    version: str = "1.0"
    is_archived: bool = False
    archived_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    file_hash: Optional[str] = None
