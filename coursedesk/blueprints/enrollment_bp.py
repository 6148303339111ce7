"""
Enrollment blueprint — students on a course instance and CSV import.

Endpoints:
    GET    /api/v1/courses/<id>/students                     — eligible students (+ enrolled flag)
    POST   /api/v1/courses/<id>/students                     — create a student and enroll them
    GET    /api/v1/courses/<id>/enrollments                  — active enrollments
    POST   /api/v1/courses/<id>/enrollments                  — enroll an existing student
    DELETE /api/v1/courses/<id>/enrollments/<student_id>     — unenroll (status → cancelled)
    GET    /api/v1/courses/<id>/seats?client_id=             — seat summary for one client
    GET    /api/v1/courses/<id>/students/import/template     — CSV template download
    POST   /api/v1/courses/<id>/students/import              — CSV import (file upload or raw body)
"""

import logging

from flask import Blueprint, Response, jsonify, request

from coursedesk.blueprints import json_object, query_int, register_error_handlers
from coursedesk.core.exceptions import ValidationError
from coursedesk.services import client_service, enrollment_service, student_import_service
from coursedesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)

enrollment_bp = Blueprint("enrollment", __name__, url_prefix="/api/v1/courses/<int:course_id>")
register_error_handlers(enrollment_bp)


# ═══════════════════════════════════════════════════════════════
# Students & enrollments
# ═══════════════════════════════════════════════════════════════


@enrollment_bp.route("/students", methods=["GET"])
def list_students(course_id):
    students = enrollment_service.list_students_for_course(
        course_id,
        client_id=query_int("client_id"),
        group_id=query_int("group_id"),
        team_id=query_int("team_id"),
        search=request.args.get("search"),
    )
    return jsonify(students), 200


@enrollment_bp.route("/students", methods=["POST"])
def add_and_enroll(course_id):
    """Create a student in ``team_id`` (or the client's default team) and enroll."""
    data = json_object()
    team_id = data.get("team_id")
    if not team_id:
        if not data.get("client_id"):
            raise ValidationError("team_id or client_id is required",
                                  details={"team_id": "Pick a team or a client"})
        team_id = client_service.default_team(data["client_id"]).id
    attendee = enrollment_service.add_and_enroll(course_id, team_id, data)
    return jsonify(dict(attendee.to_dict(), student=attendee.student.to_dict())), 201


@enrollment_bp.route("/enrollments", methods=["GET"])
def list_enrollments(course_id):
    return jsonify(enrollment_service.list_enrollments(course_id)), 200


@enrollment_bp.route("/enrollments", methods=["POST"])
def enroll(course_id):
    data = json_object()
    if not data.get("student_id"):
        raise ValidationError("student_id is required", details={"student_id": "Required"})
    attendee = enrollment_service.enroll(course_id, data["student_id"])
    return jsonify(attendee.to_dict()), 201


@enrollment_bp.route("/enrollments/<int:student_id>", methods=["DELETE"])
def unenroll(course_id, student_id):
    attendee = enrollment_service.unenroll(course_id, student_id)
    return jsonify(attendee.to_dict()), 200


@enrollment_bp.route("/seats", methods=["GET"])
def seat_summary(course_id):
    client_id = query_int("client_id")
    if client_id is None:
        raise ValidationError("client_id is required", details={"client_id": "Required"})
    return jsonify(enrollment_service.seat_summary(course_id, client_id)), 200


# ═══════════════════════════════════════════════════════════════
# CSV import
# ═══════════════════════════════════════════════════════════════


@enrollment_bp.route("/students/import/template", methods=["GET"])
def download_template(course_id):
    """Download the header-only CSV template."""
    return Response(
        student_import_service.generate_csv_template(),
        mimetype="text/csv",
        headers={
            "Content-Disposition":
                f"attachment; filename={student_import_service.TEMPLATE_FILENAME}",
        },
    )


@enrollment_bp.route("/students/import", methods=["POST"])
def import_students(course_id):
    """Import and enroll students from CSV. 200 when every row succeeded,
    207 when some rows failed."""
    client_id = request.form.get("client_id", type=int) or query_int("client_id")
    if not client_id:
        data = json_object()
        client_id = data.get("client_id")
    if not client_id:
        return api_error(E.VALIDATION_REQUIRED, "client_id is required")

    file_content = _extract_file_content()
    if not file_content:
        return api_error(E.VALIDATION_REQUIRED, "CSV file is required (file upload or raw body)")

    result = student_import_service.import_students(course_id, client_id, file_content)
    status_code = 200 if result["status"] == "completed" else 207
    return jsonify(result), status_code


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════


def _extract_file_content() -> str | None:
    """Extract CSV file content from multipart upload, JSON or raw body."""
    if request.files:
        file = request.files.get("file")
        if file:
            return file.read().decode("utf-8-sig")

    data = json_object()
    if isinstance(data.get("csv_content"), str):
        return data["csv_content"]

    if request.data and request.mimetype == "text/csv":
        return request.data.decode("utf-8-sig")

    return None
