"""
Client Service — clients, groups and teams.

Every client owns exactly one default group. ``create_client`` creates it
(with one team) so students always have a home team; a second default
group is rejected with ConflictError.
"""

from __future__ import annotations

import logging
import re

from coursedesk.core.exceptions import ConflictError, ValidationError
from coursedesk.models import db
from coursedesk.models.client import Client, Group, Team, UserTeam
from coursedesk.models.student import Student
from coursedesk.services.student_service import normalize_email
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "Default"
DEFAULT_TEAM_NAME = "Default Team"
CLIENT_FIELDS = ("phone", "address", "city", "state", "zip_code", "country")
COLOR_FIELDS = ("primary_color", "secondary_color")
HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


# ── Clients ──────────────────────────────────────────────────────────────────


def _apply_client_fields(client: Client, data: dict, errors: dict):
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            errors["name"] = "Client name is required"
        client.name = name
    if "status" in data:
        if data["status"] not in ("active", "inactive"):
            errors["status"] = "Status must be active or inactive"
        else:
            client.status = data["status"]
    if data.get("contact_email"):
        try:
            client.contact_email = normalize_email(data["contact_email"], field="contact_email")
        except ValidationError as exc:
            errors.update(exc.details)
    for field in CLIENT_FIELDS:
        if field in data:
            setattr(client, field, str(data.get(field) or "").strip() or None)
    if "logo_url" in data:
        client.logo_url = str(data.get("logo_url") or "").strip() or None
    for field in COLOR_FIELDS:
        if field in data:
            color = str(data.get(field) or "").strip() or None
            if color is not None and not HEX_COLOR.match(color):
                errors[field] = "Color must be a hex value like #9b87f5"
            else:
                setattr(client, field, color)


def create_client(data: dict) -> Client:
    """Create a client together with its default group and team."""
    client = Client(status="active")
    errors: dict = {}
    _apply_client_fields(client, dict(data, name=data.get("name")), errors)
    if errors:
        raise ValidationError("Invalid client data", details=errors)

    db.session.add(client)
    db.session.flush()
    group = Group(client_id=client.id, name=DEFAULT_GROUP_NAME,
                  description="Default group", is_default=True)
    db.session.add(group)
    db.session.flush()
    db.session.add(Team(group_id=group.id, name=DEFAULT_TEAM_NAME))
    db_commit_or_raise("Client")

    logger.info("Client created: id=%s name=%s", client.id, client.name,
                extra={"client_id": client.id})
    return client


def update_client(client_id: int, data: dict) -> Client:
    client = get_or_raise(Client, client_id, "Client")
    errors: dict = {}
    with db.session.no_autoflush:
        _apply_client_fields(client, data, errors)
    if errors:
        db.session.expire(client)
        raise ValidationError("Invalid client data", details=errors)
    db_commit_or_raise("Client")
    return client


def get_client(client_id: int) -> Client:
    return get_or_raise(Client, client_id, "Client")


def list_clients(status: str | None = None) -> list[Client]:
    query = Client.query
    if status:
        query = query.filter(Client.status == status)
    return query.order_by(Client.name).all()


# ── Groups ───────────────────────────────────────────────────────────────────


def get_default_group(client_id: int) -> Group | None:
    return (
        Group.query
        .filter_by(client_id=client_id, is_default=True)
        .order_by(Group.id)
        .first()
    )


def list_groups(client_id: int) -> list[Group]:
    get_or_raise(Client, client_id, "Client")
    return (
        Group.query
        .filter_by(client_id=client_id)
        .order_by(Group.is_default.desc(), Group.name.asc())
        .all()
    )


def create_group(*, client_id: int, data: dict) -> Group:
    client = get_or_raise(Client, client_id, "Client")
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("Group name is required", details={"name": "Group name is required"})

    is_default = bool(data.get("is_default", False))
    if is_default and get_default_group(client.id) is not None:
        raise ConflictError(resource="Default group", field="client_id", value=str(client.id))

    group = Group(
        client_id=client.id,
        name=name,
        description=str(data.get("description") or "").strip(),
        is_default=is_default,
    )
    db.session.add(group)
    db_commit_or_raise("Group")
    logger.info("Group created: id=%s client=%s default=%s", group.id, client.id, is_default,
                extra={"client_id": client.id})
    return group


def update_group(group_id: int, data: dict) -> Group:
    group = get_or_raise(Group, group_id, "Group")
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Group name is required", details={"name": "Group name is required"})
        group.name = name
    if "description" in data:
        group.description = str(data.get("description") or "").strip()
    if "is_default" in data and bool(data["is_default"]) != bool(group.is_default):
        if not data["is_default"]:
            raise ValidationError("A client must keep its default group",
                                  details={"is_default": "Cannot unset the default group"})
        raise ConflictError(resource="Default group", field="client_id", value=str(group.client_id))
    db_commit_or_raise("Group")
    return group


# ── Teams ────────────────────────────────────────────────────────────────────


def create_team(*, group_id: int, name: str | None) -> Team:
    group = get_or_raise(Group, group_id, "Group")
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Team name is required", details={"name": "Team name is required"})
    team = Team(group_id=group.id, name=name)
    db.session.add(team)
    db_commit_or_raise("Team")
    logger.info("Team created: id=%s group=%s", team.id, group.id)
    return team


def update_team(team_id: int, name: str | None) -> Team:
    team = get_or_raise(Team, team_id, "Team")
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Team name is required", details={"name": "Team name is required"})
    team.name = name
    db_commit_or_raise("Team")
    return team


def delete_team(team_id: int):
    """Hard delete. Teams that still home students cannot be deleted, nor
    can the last team of a default group."""
    team = get_or_raise(Team, team_id, "Team")
    if Student.query.filter_by(team_id=team.id).first() is not None:
        raise ValidationError("Team still has students",
                              details={"team_id": "Move or remove its students first"})
    if team.group.is_default and Team.query.filter_by(group_id=team.group_id).count() == 1:
        raise ValidationError("The default group needs at least one team",
                              details={"team_id": "Last team of the default group"})
    UserTeam.query.filter_by(team_id=team.id).delete(synchronize_session=False)
    db.session.delete(team)
    db_commit_or_raise("Team")
    logger.info("Team deleted: id=%s", team_id)


def default_team(client_id: int) -> Team:
    """First team of the client's default group; new students land here."""
    group = get_default_group(client_id)
    team = None
    if group is not None:
        team = Team.query.filter_by(group_id=group.id).order_by(Team.id).first()
    if team is None:
        raise ValidationError(
            "Client has no default team",
            details={"client_id": "No team in the client's default group"},
        )
    return team
