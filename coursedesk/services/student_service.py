"""Student record CRUD for client administrators."""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.client import Group, Team
from coursedesk.models.student import STUDENT_STATUSES, Student
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def normalize_email(raw: str | None, field: str = "email") -> str:
    """Validate and lowercase an email address, raising ValidationError."""
    email = str(raw or "").strip()
    if not email:
        raise ValidationError("Email is required", details={field: "Email is required"})
    try:
        email = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={field: "Invalid email address"})
    return email.lower()


def _required_text(data: dict, field: str, label: str, errors: dict) -> str:
    value = str(data.get(field) or "").strip()
    if not value:
        errors[field] = f"{label} is required"
    return value


def create_student(*, team_id: int, data: dict, commit: bool = True) -> Student:
    team = get_or_raise(Team, team_id, "Team")

    errors: dict = {}
    first_name = _required_text(data, "first_name", "First name", errors)
    last_name = _required_text(data, "last_name", "Last name", errors)
    email = None
    try:
        email = normalize_email(data.get("email"))
    except ValidationError as exc:
        errors.update(exc.details)
    if errors:
        raise ValidationError("Invalid student data", details=errors)

    student = Student(
        team_id=team.id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=str(data.get("phone") or "").strip() or None,
        employee_number=str(data.get("employee_number") or "").strip() or None,
        status="active",
    )
    db.session.add(student)
    db.session.flush()
    if commit:
        db_commit_or_raise("Student")
        logger.info("Student created: id=%s team=%s", student.id, team.id)
    return student


def update_student(*, student_id: int, data: dict) -> Student:
    student = get_or_raise(Student, student_id, "Student")
    errors: dict = {}

    with db.session.no_autoflush:
        for field, label in (("first_name", "First name"), ("last_name", "Last name")):
            if field in data:
                value = _required_text(data, field, label, errors)
                if value:
                    setattr(student, field, value)
        if "email" in data:
            try:
                student.email = normalize_email(data.get("email"))
            except ValidationError as exc:
                errors.update(exc.details)
        for field in ("phone", "employee_number"):
            if field in data:
                setattr(student, field, str(data.get(field) or "").strip() or None)
        if "status" in data:
            if data["status"] not in STUDENT_STATUSES:
                errors["status"] = f"Status must be one of: {', '.join(STUDENT_STATUSES)}"
            else:
                student.status = data["status"]
        if "team_id" in data:
            team = db.session.get(Team, data.get("team_id"))
            if team is None or team.group.client_id != student.client_id:
                errors["team_id"] = "Team must belong to the student's client"
            else:
                student.team_id = team.id

    if errors:
        db.session.expire(student)
        raise ValidationError("Invalid student data", details=errors)

    db_commit_or_raise("Student")
    logger.info("Student updated: id=%s", student.id)
    return student


def list_client_students(*, client_id: int, search: str | None = None,
                         status: str | None = None, team_id: int | None = None) -> list[Student]:
    query = (
        Student.query
        .join(Team, Student.team_id == Team.id)
        .join(Group, Team.group_id == Group.id)
        .filter(Group.client_id == client_id)
    )
    if status:
        query = query.filter(Student.status == status)
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
    return query.order_by(Student.last_name, Student.first_name).all()
