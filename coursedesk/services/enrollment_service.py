"""
Enrollment Service — enroll/unenroll students in course instances.

Rules:
  - A client may have at most as many non-cancelled enrollments on a course
    as it has seats there (its allocation; for a private course without an
    allocation row the host client gets the full capacity).
  - Unenrolling flips the attendee row to ``cancelled``; rows are never
    deleted. Re-enrolling reactivates the cancelled row.
  - Open-enrollment courses list and accept active students of any client;
    private courses list and accept only students of the host client's
    default group.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from coursedesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from coursedesk.models import db
from coursedesk.models.client import Group, Team
from coursedesk.models.course import CourseAllocation, CourseInstance
from coursedesk.models.student import SessionAttendee, Student
from coursedesk.services import student_service
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _active_attendees(course_id: int):
    return SessionAttendee.query.filter(
        SessionAttendee.course_instance_id == course_id,
        SessionAttendee.status != "cancelled",
    )


# ── Seat bookkeeping ─────────────────────────────────────────────────────────


def enrolled_count(course_id: int, client_id: int | None = None) -> int:
    """Number of non-cancelled enrollments, optionally for one client."""
    query = db.session.query(func.count(SessionAttendee.id)).filter(
        SessionAttendee.course_instance_id == course_id,
        SessionAttendee.status != "cancelled",
    )
    if client_id is not None:
        query = (
            query.join(Student, SessionAttendee.student_id == Student.id)
            .join(Team, Student.team_id == Team.id)
            .join(Group, Team.group_id == Group.id)
            .filter(Group.client_id == client_id)
        )
    return query.scalar() or 0


def seats_for_client(course: CourseInstance, client_id: int | None) -> int:
    if client_id is None:
        return 0
    allocation = CourseAllocation.query.filter_by(
        course_instance_id=course.id, client_id=client_id,
    ).first()
    if allocation:
        return allocation.seats_allocated
    if not course.is_open_enrollment and course.host_client_id == client_id:
        return course.capacity
    return 0


def seat_summary(course_id: int, client_id: int) -> dict:
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    available = seats_for_client(course, client_id)
    enrolled = enrolled_count(course.id, client_id)
    return {
        "client_id": client_id,
        "available_seats": available,
        "enrolled": enrolled,
        "remaining": max(available - enrolled, 0),
    }


# ── Enroll / unenroll ────────────────────────────────────────────────────────


def enroll(course_id: int, student_id: int, *, commit: bool = True) -> SessionAttendee:
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    student = get_or_raise(Student, student_id, "Student")
    if student.status != "active":
        raise ValidationError("Student is not active", details={"student_id": "Inactive student"})

    client_id = student.client_id
    if not course.is_open_enrollment and client_id != course.host_client_id:
        raise ValidationError(
            "Student does not belong to the host client of this private course",
            details={"student_id": "Not a student of the host client"},
        )
    if not course.is_open_enrollment and not student.team.group.is_default:
        raise ValidationError(
            "Only students of the host client's default group can join a private course",
            details={"student_id": "Not in the host client's default group"},
        )

    existing = SessionAttendee.query.filter_by(
        student_id=student.id, course_instance_id=course.id,
    ).first()
    if existing is not None and existing.status != "cancelled":
        raise ConflictError(resource="Enrollment", field="student_id", value=str(student.id))

    seats = seats_for_client(course, client_id)
    taken = enrolled_count(course.id, client_id)
    if taken >= seats:
        raise ValidationError(
            "No seats available for this client",
            details={"seats": f"All {seats} allocated seats are taken"},
        )

    if existing is not None:
        existing.status = "pending"
        attendee = existing
    else:
        attendee = SessionAttendee(
            student_id=student.id,
            course_instance_id=course.id,
            status="pending",
        )
        db.session.add(attendee)
    db.session.flush()

    if commit:
        db_commit_or_raise("SessionAttendee")
        logger.info(
            "Student enrolled: course=%s student=%s client=%s (%d/%d)",
            course.id, student.id, client_id, taken + 1, seats,
            extra={"course_instance_id": course.id, "client_id": client_id},
        )
    return attendee


def unenroll(course_id: int, student_id: int) -> SessionAttendee:
    attendee = _active_attendees(course_id).filter(
        SessionAttendee.student_id == student_id,
    ).first()
    if attendee is None:
        raise NotFoundError(resource="Enrollment", resource_id=f"{course_id}/{student_id}")
    attendee.status = "cancelled"
    db_commit_or_raise("SessionAttendee")
    logger.info(
        "Student unenrolled: course=%s student=%s", course_id, student_id,
        extra={"course_instance_id": course_id},
    )
    return attendee


def add_and_enroll(course_id: int, team_id: int, data: dict) -> SessionAttendee:
    """Create a student in ``team_id`` and enroll them in one commit."""
    get_or_raise(CourseInstance, course_id, "CourseInstance")
    with db.session.begin_nested():
        student = student_service.create_student(team_id=team_id, data=data, commit=False)
        attendee = enroll(course_id, student.id, commit=False)
    db_commit_or_raise("SessionAttendee")
    logger.info("Student added and enrolled: course=%s student=%s", course_id, student.id,
                extra={"course_instance_id": course_id})
    return attendee


# ── Listings ─────────────────────────────────────────────────────────────────


def list_students_for_course(
    course_id: int,
    *,
    client_id: int | None = None,
    group_id: int | None = None,
    team_id: int | None = None,
    search: str | None = None,
) -> list[dict]:
    """Active students eligible for the course, each flagged ``enrolled``."""
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")

    query = (
        Student.query
        .join(Team, Student.team_id == Team.id)
        .join(Group, Team.group_id == Group.id)
        .filter(Student.status == "active")
    )
    if course.is_open_enrollment:
        if client_id:
            query = query.filter(Group.client_id == client_id)
    else:
        if not course.host_client_id:
            return []
        query = query.filter(
            Group.client_id == course.host_client_id,
            Group.is_default.is_(True),
        )
    if group_id:
        query = query.filter(Group.id == group_id)
    if team_id:
        query = query.filter(Student.team_id == team_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Student.first_name.ilike(like),
            Student.last_name.ilike(like),
            Student.email.ilike(like),
            Student.employee_number.ilike(like),
        ))

    students = query.order_by(Student.last_name, Student.first_name).all()
    enrolled_ids = {
        row.student_id
        for row in _active_attendees(course.id).with_entities(SessionAttendee.student_id)
    }
    return [dict(s.to_dict(), enrolled=s.id in enrolled_ids) for s in students]


def list_enrollments(course_id: int) -> list[dict]:
    get_or_raise(CourseInstance, course_id, "CourseInstance")
    rows = _active_attendees(course_id).order_by(SessionAttendee.created_at).all()
    return [dict(a.to_dict(), student=a.student.to_dict()) for a in rows]


def enrolled_students(course_id: int) -> list[dict]:
    """``[{id, name}]`` of currently enrolled students."""
    rows = (
        db.session.query(Student)
        .join(SessionAttendee, SessionAttendee.student_id == Student.id)
        .filter(
            SessionAttendee.course_instance_id == course_id,
            SessionAttendee.status != "cancelled",
        )
        .order_by(Student.last_name, Student.first_name)
        .all()
    )
    return [{"id": s.id, "name": s.full_name} for s in rows]
