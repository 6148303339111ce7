"""
Vehicle catalog blueprint.

Endpoints:
    GET  /api/v1/vehicles?q=&limit=   — search by make/model substring
    POST /api/v1/vehicles             — create catalog vehicle
    GET  /api/v1/vehicles/<id>        — detail
    PUT  /api/v1/vehicles/<id>        — update (year/latacc need the elevated role)
"""

import logging

from flask import Blueprint, jsonify, request

from coursedesk.blueprints import json_object, query_int, register_error_handlers
from coursedesk.middleware.permission_required import current_actor
from coursedesk.services import vehicle_service

logger = logging.getLogger(__name__)

vehicles_bp = Blueprint("vehicles", __name__, url_prefix="/api/v1/vehicles")
register_error_handlers(vehicles_bp)

MAX_SEARCH_LIMIT = 50


@vehicles_bp.route("", methods=["GET"])
def search_vehicles():
    limit = min(query_int("limit") or 10, MAX_SEARCH_LIMIT)
    vehicles = vehicle_service.search_vehicles(request.args.get("q"), limit=limit)
    return jsonify([v.to_dict() for v in vehicles]), 200


@vehicles_bp.route("", methods=["POST"])
def create_vehicle():
    data = json_object()
    return jsonify(vehicle_service.create_vehicle(data).to_dict()), 201


@vehicles_bp.route("/<int:vehicle_id>", methods=["GET"])
def get_vehicle(vehicle_id):
    return jsonify(vehicle_service.get_vehicle(vehicle_id).to_dict()), 200


@vehicles_bp.route("/<int:vehicle_id>", methods=["PUT"])
def update_vehicle(vehicle_id):
    data = json_object()
    _, role = current_actor()
    return jsonify(vehicle_service.update_vehicle(vehicle_id, data, role).to_dict()), 200
