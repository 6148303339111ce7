"""
Courses blueprint — programs, venues, course instances and seat allocations.

Endpoints:
    GET  /api/v1/programs                          — list programs
    POST /api/v1/programs                          — create program
    GET  /api/v1/venues                            — list venues
    POST /api/v1/venues                            — create venue
    GET  /api/v1/courses                           — list (?open_enrollment=, ?client_id=)
    POST /api/v1/courses                           — create course instance
    GET  /api/v1/courses/<id>                      — detail with seat totals
    PUT  /api/v1/courses/<id>                      — update
    GET  /api/v1/courses/<id>/allocations          — stored allocations + totals
    POST /api/v1/courses/<id>/allocations/add      — validate one Add against a draft list
    POST /api/v1/courses/<id>/allocations/remove   — drop one row from a draft list
    PUT  /api/v1/courses/<id>/allocations          — save (replace) the allocation list

Allocation editing is stateless: the client posts its draft list with each
Add/Remove and gets the recomputed list and totals back; nothing is stored
until the PUT.
"""

import logging

from flask import Blueprint, jsonify, request

from coursedesk.blueprints import json_object, query_int, register_error_handlers
from coursedesk.middleware.permission_required import require_role
from coursedesk.services import allocation_service, course_service
from coursedesk.services.permission_service import ADMIN_ROLES

logger = logging.getLogger(__name__)

courses_bp = Blueprint("courses", __name__, url_prefix="/api/v1")
register_error_handlers(courses_bp)


# ═════════════════════════════════════════════════════════════════════════
# Programs & venues
# ═════════════════════════════════════════════════════════════════════════


@courses_bp.route("/programs", methods=["GET"])
def list_programs():
    return jsonify([p.to_dict() for p in course_service.list_programs()]), 200


@courses_bp.route("/programs", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_program():
    data = json_object()
    return jsonify(course_service.create_program(data).to_dict()), 201


@courses_bp.route("/venues", methods=["GET"])
def list_venues():
    return jsonify([v.to_dict() for v in course_service.list_venues()]), 200


@courses_bp.route("/venues", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_venue():
    data = json_object()
    return jsonify(course_service.create_venue(data).to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Course instances
# ═════════════════════════════════════════════════════════════════════════


@courses_bp.route("/courses", methods=["GET"])
def list_courses():
    open_flag = request.args.get("open_enrollment")
    open_enrollment = None
    if open_flag is not None:
        open_enrollment = open_flag.lower() in ("1", "true", "yes")
    courses = course_service.list_course_instances(
        open_enrollment=open_enrollment, client_id=query_int("client_id"),
    )
    return jsonify(courses), 200


@courses_bp.route("/courses", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_course():
    data = json_object()
    course = course_service.create_course_instance(data)
    return jsonify(course_service.course_summary(course)), 201


@courses_bp.route("/courses/<int:course_id>", methods=["GET"])
def get_course(course_id):
    return jsonify(course_service.get_course_instance(course_id)), 200


@courses_bp.route("/courses/<int:course_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_course(course_id):
    data = json_object()
    course = course_service.update_course_instance(course_id, data)
    return jsonify(course_service.course_summary(course)), 200


# ═════════════════════════════════════════════════════════════════════════
# Seat allocations
# ═════════════════════════════════════════════════════════════════════════


@courses_bp.route("/courses/<int:course_id>/allocations", methods=["GET"])
def get_allocations(course_id):
    return jsonify(allocation_service.load_allocations(course_id).to_dict()), 200


@courses_bp.route("/courses/<int:course_id>/allocations/add", methods=["POST"])
@require_role(*ADMIN_ROLES)
def add_allocation(course_id):
    data = json_object()
    editor = allocation_service.add_allocation(
        course_id,
        data.get("allocations") or [],
        data.get("client_id"),
        data.get("seats_allocated"),
    )
    return jsonify(editor.to_dict()), 200


@courses_bp.route("/courses/<int:course_id>/allocations/remove", methods=["POST"])
@require_role(*ADMIN_ROLES)
def remove_allocation(course_id):
    data = json_object()
    editor = allocation_service.remove_allocation(
        course_id, data.get("allocations") or [], data.get("index"),
    )
    return jsonify(editor.to_dict()), 200


@courses_bp.route("/courses/<int:course_id>/allocations", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def save_allocations(course_id):
    data = json_object()
    editor = allocation_service.save_allocations(course_id, data.get("allocations") or [])
    return jsonify(editor.to_dict()), 200
