"""
Course closure blueprint — the five-step closure wizard.

Every wizard endpoint returns the full wizard view: step, progress, step
list, form data, per-vehicle ``can_edit_sensitive`` and review issues.

Endpoints (prefix /api/v1/courses/<id>/closure):
    GET    /wizard                            — open (create or resume) the wizard
    DELETE /wizard                            — discard in-progress state
    POST   /wizard/navigate                   — {"action": "next"|"back"|"jump", "step"}
    PATCH  /wizard                            — merge course_info / notes / course_layout
    POST   /wizard/file                       — upload the course data ZIP (multipart "file")
    DELETE /wizard/file                       — detach the file
    POST   /wizard/vehicles                   — add new vehicle, or {"vehicle_id"} from catalog
    PUT    /wizard/vehicles/<index>           — edit fields (sensitive fields role-gated)
    POST   /wizard/vehicles/<index>/select    — replace with catalog vehicle {"vehicle_id"}
    POST   /wizard/vehicles/<index>/save      — register a new vehicle in the catalog
    DELETE /wizard/vehicles/<index>           — remove (cars renumbered)
    PUT    /wizard/exercises/<name>           — slalom / lane_change {"chord", "mo"}
    PUT    /wizard/final-exercise             — final exercise patch
    POST   /wizard/additional-exercises       — add additional exercise
    DELETE /wizard/additional-exercises/<id>  — remove additional exercise
    GET    /wizard/review                     — review data + enrolled students
    POST   /wizard/submit                     — persist closure (authenticated user required)
    POST   /wizard/edit                       — reopen a submitted closure for editing
    GET    /                                  — stored closure record
    GET    /download                          — stored closure document as JSON attachment
"""

import logging

from flask import Blueprint, Response, jsonify, request

from coursedesk.blueprints import json_object, register_error_handlers
from coursedesk.core.exceptions import ValidationError
from coursedesk.middleware.permission_required import current_actor
from coursedesk.services import closure_service

logger = logging.getLogger(__name__)

closure_bp = Blueprint("closure", __name__, url_prefix="/api/v1/courses/<int:course_id>/closure")
register_error_handlers(closure_bp)


def _role():
    return current_actor()[1]


# ═════════════════════════════════════════════════════════════════════════
# Wizard state & navigation
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("/wizard", methods=["GET"])
def open_wizard(course_id):
    return jsonify(closure_service.open_wizard(course_id, _role())), 200


@closure_bp.route("/wizard", methods=["DELETE"])
def reset_wizard(course_id):
    return jsonify(closure_service.reset_wizard(course_id, _role())), 200


@closure_bp.route("/wizard/navigate", methods=["POST"])
def navigate(course_id):
    data = json_object()
    action = data.get("action")
    if action not in ("next", "back", "jump"):
        raise ValidationError("action must be next, back or jump",
                              details={"action": "Must be next, back or jump"})
    return jsonify(closure_service.navigate(course_id, action, data.get("step"), _role())), 200


@closure_bp.route("/wizard", methods=["PATCH"])
def update_form(course_id):
    data = json_object()
    return jsonify(closure_service.update_form(course_id, data, _role())), 200


# ═════════════════════════════════════════════════════════════════════════
# Course data file
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("/wizard/file", methods=["POST"])
def upload_file(course_id):
    file = request.files.get("file")
    if file is None:
        raise ValidationError("Course data file is required",
                              details={"file": "Please upload a ZIP file"})
    return jsonify(closure_service.upload_closure_file(course_id, file, _role())), 200


@closure_bp.route("/wizard/file", methods=["DELETE"])
def remove_file(course_id):
    return jsonify(closure_service.remove_closure_file(course_id, _role())), 200


# ═════════════════════════════════════════════════════════════════════════
# Vehicles
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("/wizard/vehicles", methods=["POST"])
def add_vehicle(course_id):
    data = json_object()
    return jsonify(closure_service.add_vehicle(course_id, data, _role())), 201


@closure_bp.route("/wizard/vehicles/<int:index>", methods=["PUT"])
def update_vehicle(course_id, index):
    data = json_object()
    return jsonify(closure_service.update_vehicle(course_id, index, data, _role())), 200


@closure_bp.route("/wizard/vehicles/<int:index>/select", methods=["POST"])
def select_catalog_vehicle(course_id, index):
    data = json_object()
    if not data.get("vehicle_id"):
        raise ValidationError("vehicle_id is required", details={"vehicle_id": "Required"})
    return jsonify(closure_service.select_catalog_vehicle(
        course_id, index, data["vehicle_id"], _role())), 200


@closure_bp.route("/wizard/vehicles/<int:index>/save", methods=["POST"])
def save_vehicle(course_id, index):
    return jsonify(closure_service.save_vehicle_to_catalog(course_id, index, _role())), 200


@closure_bp.route("/wizard/vehicles/<int:index>", methods=["DELETE"])
def remove_vehicle(course_id, index):
    return jsonify(closure_service.remove_vehicle(course_id, index, _role())), 200


# ═════════════════════════════════════════════════════════════════════════
# Exercises
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("/wizard/exercises/<name>", methods=["PUT"])
def set_core_exercise(course_id, name):
    data = json_object()
    return jsonify(closure_service.set_core_exercise(course_id, name, data, _role())), 200


@closure_bp.route("/wizard/final-exercise", methods=["PUT"])
def update_final_exercise(course_id):
    data = json_object()
    return jsonify(closure_service.update_final_exercise(course_id, data, _role())), 200


@closure_bp.route("/wizard/additional-exercises", methods=["POST"])
def add_additional_exercise(course_id):
    data = json_object()
    return jsonify(closure_service.add_additional_exercise(course_id, data, _role())), 201


@closure_bp.route("/wizard/additional-exercises/<exercise_id>", methods=["DELETE"])
def remove_additional_exercise(course_id, exercise_id):
    return jsonify(closure_service.remove_additional_exercise(
        course_id, exercise_id, _role())), 200


# ═════════════════════════════════════════════════════════════════════════
# Review / submit / edit
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("/wizard/review", methods=["GET"])
def review(course_id):
    return jsonify(closure_service.review(course_id, _role())), 200


@closure_bp.route("/wizard/submit", methods=["POST"])
def submit(course_id):
    user_id, role = current_actor()
    return jsonify(closure_service.submit(course_id, user_id, role)), 200


@closure_bp.route("/wizard/edit", methods=["POST"])
def begin_edit(course_id):
    return jsonify(closure_service.begin_edit(course_id, _role())), 200


# ═════════════════════════════════════════════════════════════════════════
# Stored closure
# ═════════════════════════════════════════════════════════════════════════


@closure_bp.route("", methods=["GET"])
def get_closure(course_id):
    closure = closure_service.get_closure(course_id)
    return jsonify(dict(closure.to_dict(),
                        analytics_url=closure_service.analytics_url(course_id))), 200


@closure_bp.route("/download", methods=["GET"])
def download(course_id):
    filename, content = closure_service.closure_download(course_id)
    return Response(
        content,
        mimetype="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
