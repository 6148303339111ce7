"""
Students blueprint — a client's student roster.

Endpoints:
    GET  /api/v1/clients/<id>/students   — list (?search=, ?status=, ?team_id=)
    POST /api/v1/clients/<id>/students   — create (default team unless team_id given)
    GET  /api/v1/students/<id>           — detail
    PUT  /api/v1/students/<id>           — update
"""

import logging

from flask import Blueprint, jsonify, request

from coursedesk.blueprints import json_object, query_int, register_error_handlers
from coursedesk.core.exceptions import ValidationError
from coursedesk.middleware.permission_required import require_role
from coursedesk.models.client import Team
from coursedesk.models.student import Student
from coursedesk.services import client_service, student_service
from coursedesk.services.permission_service import ADMIN_ROLES
from coursedesk.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

students_bp = Blueprint("students", __name__, url_prefix="/api/v1")
register_error_handlers(students_bp)


@students_bp.route("/clients/<int:client_id>/students", methods=["GET"])
def list_students(client_id):
    client_service.get_client(client_id)
    students = student_service.list_client_students(
        client_id=client_id,
        search=request.args.get("search"),
        status=request.args.get("status"),
        team_id=query_int("team_id"),
    )
    return jsonify([s.to_dict() for s in students]), 200


@students_bp.route("/clients/<int:client_id>/students", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_student(client_id):
    data = json_object()
    client_service.get_client(client_id)
    if data.get("team_id"):
        team = get_or_raise(Team, data["team_id"], "Team")
        if team.group.client_id != client_id:
            raise ValidationError("Team does not belong to this client",
                                  details={"team_id": "Team must belong to the client"})
    else:
        team = client_service.default_team(client_id)
    student = student_service.create_student(team_id=team.id, data=data)
    return jsonify(student.to_dict()), 201


@students_bp.route("/students/<int:student_id>", methods=["GET"])
def get_student(student_id):
    return jsonify(get_or_raise(Student, student_id, "Student").to_dict()), 200


@students_bp.route("/students/<int:student_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_student(student_id):
    data = json_object()
    student = student_service.update_student(student_id=student_id, data=data)
    return jsonify(student.to_dict()), 200
