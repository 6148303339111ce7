"""
Student CSV Import Service — bulk enroll a client's students in a course.

CSV columns (header row required):
    First Name, Last Name, Email, Phone, Employee Number

``Phone`` and ``Employee Number`` may be omitted. Unquoted files parse
exactly as a plain comma split; quoted fields containing commas are also
accepted.

Pipeline: parse → capacity check (whole file) → per row, in its own
savepoint: validate, find-or-create the student in the client's default
team, enroll. Failed rows are reported; successful rows are kept.
"""

import csv
import io
import logging

from sqlalchemy import func

from coursedesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from coursedesk.models import db
from coursedesk.models.client import Client, Team
from coursedesk.models.course import CourseInstance
from coursedesk.models.student import SessionAttendee, Student
from coursedesk.services import client_service, enrollment_service
from coursedesk.services.student_service import normalize_email
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# CSV Template
# ═══════════════════════════════════════════════════════════════

CSV_TEMPLATE_HEADER = ["First Name", "Last Name", "Email", "Phone", "Employee Number"]
REQUIRED_HEADERS = CSV_TEMPLATE_HEADER[:3]
TEMPLATE_FILENAME = "student_import_template.csv"


def _column_key(header: str) -> str:
    """'Employee Number' → 'employee_number'."""
    return "_".join(header.strip().lower().split())


def generate_csv_template() -> str:
    """Header line only."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_TEMPLATE_HEADER)
    return output.getvalue()


# ═══════════════════════════════════════════════════════════════
# CSV Parsing
# ═══════════════════════════════════════════════════════════════

def parse_csv(file_content: str | bytes) -> list[dict]:
    """
    Parse CSV content into row dicts keyed by snake_case column names.
    Returns [{"row_num", "first_name", "last_name", "email", "phone", "employee_number"}]
    """
    if isinstance(file_content, bytes):
        file_content = file_content.decode("utf-8-sig")  # Handle BOM

    reader = csv.reader(io.StringIO(file_content))
    header = next(reader, None)
    if not header:
        raise ValidationError("CSV file is empty", details={"file": "CSV file is empty"})

    header = [h.strip() for h in header]
    if [h.lower() for h in header[:3]] != [h.lower() for h in REQUIRED_HEADERS]:
        raise ValidationError(
            "CSV header must start with: " + ", ".join(REQUIRED_HEADERS),
            details={"file": f"Found columns: {', '.join(header)}"},
        )
    keys = [_column_key(h) for h in header]

    rows = []
    for line_num, values in enumerate(reader, start=2):  # header is row 1
        if not any(v.strip() for v in values):
            continue
        record = {key: "" for key in ("first_name", "last_name", "email", "phone", "employee_number")}
        for key, value in zip(keys, values):
            record[key] = value.strip()
        record["row_num"] = line_num
        rows.append(record)
    return rows


# ═══════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════

def _import_row(course: CourseInstance, team: Team, row: dict) -> Student:
    missing = [
        label for key, label in (
            ("first_name", "First Name"), ("last_name", "Last Name"), ("email", "Email"),
        ) if not row.get(key)
    ]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
    email = normalize_email(row["email"])

    student = Student.query.filter(
        func.lower(Student.email) == email, Student.team_id == team.id,
    ).first()
    if student is None:
        student = Student(
            team_id=team.id,
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=email,
            phone=row.get("phone") or None,
            employee_number=row.get("employee_number") or None,
            status="active",
        )
        db.session.add(student)
        db.session.flush()
    else:
        already = SessionAttendee.query.filter(
            SessionAttendee.student_id == student.id,
            SessionAttendee.course_instance_id == course.id,
            SessionAttendee.status != "cancelled",
        ).first()
        if already is not None:
            raise ValidationError(f"Student {email} is already enrolled in this course")

    enrollment_service.enroll(course.id, student.id, commit=False)
    return student


def import_students(course_id: int, client_id: int, file_content: str | bytes) -> dict:
    """
    Full pipeline: parse → capacity check → per-row import.
    Returns {"status", "total_rows", "success_count", "error_count", "errors", "message"}.
    """
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    client = get_or_raise(Client, client_id, "Client")

    rows = parse_csv(file_content)
    if not rows:
        raise ValidationError("CSV file has no data rows", details={"file": "No data rows"})

    seats = enrollment_service.seat_summary(course.id, client.id)
    if len(rows) > seats["remaining"]:
        raise ValidationError(
            f"Cannot import {len(rows)} students. Only {seats['remaining']} seats available.",
            details={"file": f"{len(rows)} rows, {seats['remaining']} seats remaining"},
        )

    team = client_service.default_team(client.id)

    success_count = 0
    errors = []
    for row in rows:
        try:
            with db.session.begin_nested():
                _import_row(course, team, row)
            success_count += 1
        except (ValidationError, ConflictError, NotFoundError) as exc:
            errors.append({
                "row_num": row["row_num"],
                "email": row.get("email", ""),
                "error": str(exc),
            })

    db_commit_or_raise("SessionAttendee")

    logger.info(
        "Student import: course=%s client=%s rows=%d ok=%d failed=%d",
        course.id, client.id, len(rows), success_count, len(errors),
        extra={"course_instance_id": course.id, "client_id": client.id},
    )
    return {
        "status": "completed" if not errors else "partial",
        "message": (
            f"Imported {success_count} students"
            + (f", {len(errors)} rows had errors" if errors else "")
        ),
        "total_rows": len(rows),
        "success_count": success_count,
        "error_count": len(errors),
        "errors": errors,
    }
