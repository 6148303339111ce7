"""Programs, venues and course instances."""

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.client import Client
from coursedesk.models.course import CourseAllocation, CourseInstance, Program, Venue
from coursedesk.services import enrollment_service
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise, parse_date, parse_positive_int

logger = logging.getLogger(__name__)


# ── Programs / venues ────────────────────────────────────────────────────────


def create_program(data: dict) -> Program:
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("Program name is required", details={"name": "Name is required"})
    max_students = data.get("max_students")
    if max_students is not None and parse_positive_int(max_students) is None:
        raise ValidationError("Invalid max_students", details={"max_students": "Must be a positive whole number"})
    program = Program(
        name=name,
        sku=data.get("sku"),
        description=data.get("description", ""),
        duration_days=data.get("duration_days"),
        max_students=parse_positive_int(max_students),
        min_students=data.get("min_students"),
        price=data.get("price"),
        lvl=data.get("lvl"),
        measured=bool(data.get("measured", True)),
    )
    db.session.add(program)
    db_commit_or_raise("Program")
    logger.info("Program created: id=%s name=%s", program.id, program.name)
    return program


def list_programs() -> list[Program]:
    return Program.query.order_by(Program.name).all()


def create_venue(data: dict) -> Venue:
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("Venue name is required", details={"name": "Name is required"})
    venue = Venue(
        name=name,
        short_name=data.get("short_name"),
        address=data.get("address"),
        region=data.get("region"),
        country=data.get("country"),
    )
    db.session.add(venue)
    db_commit_or_raise("Venue")
    return venue


def list_venues() -> list[Venue]:
    return Venue.query.order_by(Venue.name).all()


# ── Course instances ─────────────────────────────────────────────────────────


def _apply_course_fields(course: CourseInstance, data: dict, errors: dict):
    if "program_id" in data:
        program_id = parse_positive_int(data.get("program_id"))
        program = db.session.get(Program, program_id) if program_id else None
        if program is None:
            errors["program_id"] = "Program does not exist"
        else:
            course.program_id = program.id
    if "venue_id" in data:
        raw = data.get("venue_id")
        venue_id = parse_positive_int(raw)
        if raw and (venue_id is None or db.session.get(Venue, venue_id) is None):
            errors["venue_id"] = "Venue does not exist"
        else:
            course.venue_id = venue_id
    for field in ("start_date", "end_date"):
        if field in data:
            value = parse_date(data.get(field))
            if data.get(field) and value is None:
                errors[field] = "Invalid date"
            setattr(course, field, value)
    if "visibility_type" in data:
        try:
            course.visibility_type = int(data.get("visibility_type") or 0)
        except (TypeError, ValueError):
            errors["visibility_type"] = "Must be a whole number"
    if "is_open_enrollment" in data:
        course.is_open_enrollment = bool(data.get("is_open_enrollment"))
    if "host_client_id" in data:
        course.host_client_id = parse_positive_int(data.get("host_client_id"))
    if "private_seats_allocated" in data:
        seats = data.get("private_seats_allocated")
        if seats not in (None, "") and parse_positive_int(seats) is None:
            errors["private_seats_allocated"] = "Must be a positive whole number"
        else:
            course.private_seats_allocated = parse_positive_int(seats)

    if course.is_open_enrollment:
        course.host_client_id = None
        course.private_seats_allocated = None
    elif not course.host_client_id:
        errors["host_client_id"] = "A private course needs a host client"
    elif db.session.get(Client, course.host_client_id) is None:
        errors["host_client_id"] = "Client does not exist"

    if not course.start_date:
        errors.setdefault("start_date", "Start date is required")
    if course.program_id is None:
        errors.setdefault("program_id", "Program is required")
    if course.start_date and course.end_date and course.end_date < course.start_date:
        errors["end_date"] = "End date must not be before the start date"


def create_course_instance(data: dict) -> CourseInstance:
    course = CourseInstance(is_open_enrollment=False, visibility_type=0)
    errors: dict = {}
    _apply_course_fields(course, data, errors)
    if errors:
        raise ValidationError("Invalid course data", details=errors)
    db.session.add(course)
    db_commit_or_raise("CourseInstance")
    logger.info("Course created: id=%s program=%s start=%s open=%s",
                course.id, course.program_id, course.start_date, course.is_open_enrollment,
                extra={"course_instance_id": course.id})
    return course


def update_course_instance(course_id: int, data: dict) -> CourseInstance:
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    errors: dict = {}
    with db.session.no_autoflush:
        _apply_course_fields(course, data, errors)
    if errors:
        db.session.expire(course)
        raise ValidationError("Invalid course data", details=errors)
    db_commit_or_raise("CourseInstance")
    logger.info("Course updated: id=%s", course.id, extra={"course_instance_id": course.id})
    return course


def course_summary(course: CourseInstance) -> dict:
    allocated = (
        db.session.query(func.coalesce(func.sum(CourseAllocation.seats_allocated), 0))
        .filter(CourseAllocation.course_instance_id == course.id)
        .scalar()
    )
    return dict(
        course.to_dict(),
        allocated_seats=int(allocated or 0),
        enrolled_count=enrollment_service.enrolled_count(course.id),
    )


def get_course_instance(course_id: int) -> dict:
    return course_summary(get_or_raise(CourseInstance, course_id, "CourseInstance"))


def list_course_instances(*, open_enrollment: bool | None = None,
                          client_id: int | None = None) -> list[dict]:
    query = CourseInstance.query
    if open_enrollment is not None:
        query = query.filter(CourseInstance.is_open_enrollment.is_(open_enrollment))
    if client_id:
        allocated_ids = db.session.query(CourseAllocation.course_instance_id).filter(
            CourseAllocation.client_id == client_id)
        query = query.filter(or_(
            CourseInstance.host_client_id == client_id,
            CourseInstance.id.in_(allocated_ids),
        ))
    return [course_summary(c) for c in query.order_by(CourseInstance.start_date.desc()).all()]
