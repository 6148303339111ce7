"""
Client administration blueprint.

Endpoints:
    GET    /api/v1/clients                           — list clients
    POST   /api/v1/clients                           — create (+ default group/team)
    GET    /api/v1/clients/<id>                      — client detail
    PUT    /api/v1/clients/<id>                      — update
    GET    /api/v1/clients/<id>/groups               — groups with teams
    POST   /api/v1/clients/<id>/groups               — create group
    PUT    /api/v1/groups/<id>                       — update group
    POST   /api/v1/groups/<id>/teams                 — create team
    PUT    /api/v1/teams/<id>                        — rename team
    DELETE /api/v1/teams/<id>                        — delete team
    GET    /api/v1/clients/<id>/users                — client users
    POST   /api/v1/clients/<id>/users                — add existing account
    PUT    /api/v1/client-users/<id>                 — update membership
    DELETE /api/v1/client-users/<id>                 — remove membership
    GET    /api/v1/clients/<id>/invitations          — list invitations
    POST   /api/v1/clients/<id>/invitations          — invite by email
    POST   /api/v1/invitations/<id>/resend           — new token + email
    DELETE /api/v1/invitations/<id>                  — revoke
"""

import logging

from flask import Blueprint, jsonify, request

from coursedesk.blueprints import json_object, register_error_handlers
from coursedesk.middleware.permission_required import require_role
from coursedesk.services import client_service, client_user_service, invitation_service
from coursedesk.services.permission_service import ADMIN_ROLES

logger = logging.getLogger(__name__)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/v1")
register_error_handlers(clients_bp)


# ═════════════════════════════════════════════════════════════════════════
# Clients
# ═════════════════════════════════════════════════════════════════════════


@clients_bp.route("/clients", methods=["GET"])
def list_clients():
    clients = client_service.list_clients(request.args.get("status"))
    return jsonify([c.to_dict() for c in clients]), 200


@clients_bp.route("/clients", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_client():
    data = json_object()
    client = client_service.create_client(data)
    return jsonify(client.to_dict()), 201


@clients_bp.route("/clients/<int:client_id>", methods=["GET"])
def get_client(client_id):
    client = client_service.get_client(client_id)
    return jsonify(client.to_dict()), 200


@clients_bp.route("/clients/<int:client_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_client(client_id):
    data = json_object()
    client = client_service.update_client(client_id, data)
    return jsonify(client.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Groups & teams
# ═════════════════════════════════════════════════════════════════════════


@clients_bp.route("/clients/<int:client_id>/groups", methods=["GET"])
def list_groups(client_id):
    groups = client_service.list_groups(client_id)
    return jsonify([g.to_dict(include_teams=True) for g in groups]), 200


@clients_bp.route("/clients/<int:client_id>/groups", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_group(client_id):
    data = json_object()
    group = client_service.create_group(client_id=client_id, data=data)
    return jsonify(group.to_dict(include_teams=True)), 201


@clients_bp.route("/groups/<int:group_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_group(group_id):
    data = json_object()
    group = client_service.update_group(group_id, data)
    return jsonify(group.to_dict(include_teams=True)), 200


@clients_bp.route("/groups/<int:group_id>/teams", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_team(group_id):
    data = json_object()
    team = client_service.create_team(group_id=group_id, name=data.get("name"))
    return jsonify(team.to_dict()), 201


@clients_bp.route("/teams/<int:team_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_team(team_id):
    data = json_object()
    team = client_service.update_team(team_id, data.get("name"))
    return jsonify(team.to_dict()), 200


@clients_bp.route("/teams/<int:team_id>", methods=["DELETE"])
@require_role(*ADMIN_ROLES)
def delete_team(team_id):
    client_service.delete_team(team_id)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════
# Client users
# ═════════════════════════════════════════════════════════════════════════


@clients_bp.route("/clients/<int:client_id>/users", methods=["GET"])
def list_client_users(client_id):
    return jsonify(client_user_service.list_client_users(client_id)), 200


@clients_bp.route("/clients/<int:client_id>/users", methods=["POST"])
@require_role(*ADMIN_ROLES)
def add_client_user(client_id):
    data = json_object()
    client_user = client_user_service.add_client_user(
        client_id=client_id,
        email=data.get("email"),
        role=data.get("role"),
        group_id=data.get("group_id"),
        team_id=data.get("team_id"),
    )
    return jsonify(client_user_service.serialize(client_user)), 201


@clients_bp.route("/client-users/<int:client_user_id>", methods=["PUT"])
@require_role(*ADMIN_ROLES)
def update_client_user(client_user_id):
    data = json_object()
    client_user = client_user_service.update_client_user(client_user_id, data)
    return jsonify(client_user_service.serialize(client_user)), 200


@clients_bp.route("/client-users/<int:client_user_id>", methods=["DELETE"])
@require_role(*ADMIN_ROLES)
def remove_client_user(client_user_id):
    client_user_service.remove_client_user(client_user_id)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════
# Invitations
# ═════════════════════════════════════════════════════════════════════════


@clients_bp.route("/clients/<int:client_id>/invitations", methods=["GET"])
def list_invitations(client_id):
    return jsonify(invitation_service.list_invitations(client_id, request.args.get("status"))), 200


@clients_bp.route("/clients/<int:client_id>/invitations", methods=["POST"])
@require_role(*ADMIN_ROLES)
def create_invitation(client_id):
    data = json_object()
    result = invitation_service.create_invitation(
        client_id=client_id, email=data.get("email"), role=data.get("role"),
    )
    return jsonify(result), 201


@clients_bp.route("/invitations/<int:invitation_id>/resend", methods=["POST"])
@require_role(*ADMIN_ROLES)
def resend_invitation(invitation_id):
    return jsonify(invitation_service.resend_invitation(invitation_id)), 200


@clients_bp.route("/invitations/<int:invitation_id>", methods=["DELETE"])
@require_role(*ADMIN_ROLES)
def revoke_invitation(invitation_id):
    invitation_service.revoke_invitation(invitation_id)
    return jsonify({"deleted": True}), 200
