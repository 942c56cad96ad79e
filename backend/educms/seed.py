"""Demo data for local development.

`seed_demo_data` is idempotent: rows are matched on their business key
(student id, announcement title) and only missing ones are added.
"""

import logging
from datetime import timedelta

from sqlmodel import col

from .models import (
    Announcement,
    AnnouncementCategory,
    AnnouncementPriority,
    Student,
    StudentStatus,
)
from .unit_of_work import UnitOfWork

logger = logging.getLogger("educms.seed")

DEMO_STUDENTS = [
    # student_id, name, email, grade, section, days enrolled
    ("STU001", "John Doe", "john.doe@school.edu", "10", "A", 182),
    ("STU002", "Jane Smith", "jane.smith@school.edu", "11", "B", 243),
]

WELCOME_TITLE = "Welcome to the New Academic Year"


async def seed_demo_data(uow: UnitOfWork) -> int:
    """Add the demo students and welcome announcement; return rows saved."""
    now = uow.clock()
    for student_id, name, email, grade, section, days in DEMO_STUDENTS:
        if await uow.students.any(col(Student.student_id) == student_id):
            continue
        await uow.students.add(Student(
            student_id=student_id,
            name=name,
            email=email,
            grade=grade,
            section=section,
            status=StudentStatus.ACTIVE,
            enrollment_date=now - timedelta(days=days),
        ))

    if not await uow.announcements.any(col(Announcement.title) == WELCOME_TITLE):
        await uow.announcements.add(Announcement(
            title=WELCOME_TITLE,
            content=(
                "<p>We are excited to welcome all students to the new academic year. "
                "Please review the updated policies and procedures.</p>"
            ),
            category=AnnouncementCategory.GENERAL,
            priority=AnnouncementPriority.HIGH,
            author_id="admin",
            author_name="System Administrator",
            is_published=True,
        ))

    saved = await uow.save_changes()
    logger.info("Seeded %d demo rows", saved)
    return saved
