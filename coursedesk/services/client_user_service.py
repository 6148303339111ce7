"""
Client User Service — memberships of person accounts in client organisations.

Group/team rules:
  - Every member belongs to the client's default group; it cannot be removed.
  - Removing a group drops that group's teams from the member's teams.
  - When only teams are given, each team brings its group along.
"""

from __future__ import annotations

import logging

from coursedesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from coursedesk.models import db
from coursedesk.models.account import User
from coursedesk.models.client import (
    CLIENT_USER_ROLES,
    CLIENT_USER_STATUSES,
    Client,
    ClientUser,
    Group,
    Team,
    UserGroup,
    UserTeam,
)
from coursedesk.services.client_service import get_default_group
from coursedesk.services.student_service import normalize_email
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ROLE = "supervisor"


def _validate_role(role: str | None) -> str:
    role = role or DEFAULT_CLIENT_ROLE
    if role not in CLIENT_USER_ROLES:
        raise ValidationError(
            f"Invalid role '{role}'",
            details={"role": f"Role must be one of: {', '.join(CLIENT_USER_ROLES)}"},
        )
    return role


def _client_group_ids(client_id: int) -> set[int]:
    return {row.id for row in Group.query.filter_by(client_id=client_id).with_entities(Group.id)}


def _memberships(client_id: int, user_id: int) -> tuple[set[int], set[int]]:
    """(group_ids, team_ids) of the user within one client."""
    group_ids = _client_group_ids(client_id)
    if not group_ids:
        return set(), set()
    groups = {
        row.group_id
        for row in UserGroup.query.filter(
            UserGroup.user_id == user_id, UserGroup.group_id.in_(group_ids),
        )
    }
    teams = {
        row.team_id
        for row in (
            db.session.query(UserTeam)
            .join(Team, UserTeam.team_id == Team.id)
            .filter(UserTeam.user_id == user_id, Team.group_id.in_(group_ids))
        )
    }
    return groups, teams


def _id_list(value, field: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Invalid {field}", details={field: "Must be a list of ids"})
    if any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValidationError(f"Invalid {field}", details={field: "Ids must be integers"})
    return value


def _resolve_teams(client_id: int, team_ids, field: str = "team_ids") -> list[Team]:
    client_groups = _client_group_ids(client_id)
    teams = []
    for team_id in _id_list(team_ids, field):
        team = db.session.get(Team, team_id)
        if team is None or team.group_id not in client_groups:
            raise ValidationError("Team does not belong to this client",
                                  details={field: f"Invalid team {team_id}"})
        teams.append(team)
    return teams


def _resolve_group_ids(client_id: int, group_ids, field: str = "group_ids") -> set[int]:
    client_groups = _client_group_ids(client_id)
    resolved = set()
    for group_id in _id_list(group_ids, field):
        if group_id not in client_groups:
            raise ValidationError("Group does not belong to this client",
                                  details={field: f"Invalid group {group_id}"})
        resolved.add(group_id)
    return resolved


def _sync_memberships(client_id: int, user_id: int, group_ids: set[int], team_ids: set[int]):
    """Replace the user's group/team memberships within one client."""
    current_groups, current_teams = _memberships(client_id, user_id)
    for group_id in current_groups - group_ids:
        UserGroup.query.filter_by(user_id=user_id, group_id=group_id).delete(synchronize_session=False)
    for group_id in group_ids - current_groups:
        db.session.add(UserGroup(user_id=user_id, group_id=group_id))
    for team_id in current_teams - team_ids:
        UserTeam.query.filter_by(user_id=user_id, team_id=team_id).delete(synchronize_session=False)
    for team_id in team_ids - current_teams:
        db.session.add(UserTeam(user_id=user_id, team_id=team_id))


def serialize(client_user: ClientUser) -> dict:
    groups, teams = _memberships(client_user.client_id, client_user.user_id)
    return client_user.to_dict(group_ids=sorted(groups), team_ids=sorted(teams))


# ── Operations ───────────────────────────────────────────────────────────────


def add_client_user(*, client_id: int, email: str | None, role: str | None = None,
                    group_id: int | None = None, team_id: int | None = None) -> ClientUser:
    """Link an existing account to a client with status ``pending``."""
    client = get_or_raise(Client, client_id, "Client")
    email = normalize_email(email)
    role = _validate_role(role)

    user = User.query.filter(db.func.lower(User.email) == email).first()
    if user is None:
        raise NotFoundError(resource="User", resource_id=email)
    if ClientUser.query.filter_by(client_id=client.id, user_id=user.id).first():
        raise ConflictError(resource="Client user", field="email", value=email)

    group_ids = _resolve_group_ids(client.id, [group_id] if group_id else [], "group_id")
    team_ids: set[int] = set()
    if team_id:
        team = _resolve_teams(client.id, [team_id], "team_id")[0]
        if group_id and team.group_id != group_id:
            raise ValidationError("Team does not belong to the selected group",
                                  details={"team_id": "Pick a team of the selected group"})
        group_ids.add(team.group_id)
        team_ids.add(team.id)
    default_group = get_default_group(client.id)
    if default_group is not None:
        group_ids.add(default_group.id)

    client_user = ClientUser(client_id=client.id, user_id=user.id, role=role, status="pending")
    db.session.add(client_user)
    _sync_memberships(client.id, user.id, group_ids, team_ids)
    db_commit_or_raise("ClientUser")

    logger.info("Client user added: client=%s user=%s role=%s", client.id, user.id, role,
                extra={"client_id": client.id, "user_id": user.id})
    return client_user


def update_client_user(client_user_id: int, data: dict) -> ClientUser:
    """Update profile, role, status and group/team memberships."""
    client_user = get_or_raise(ClientUser, client_user_id, "ClientUser")
    user = client_user.user
    errors: dict = {}

    # Resolved before any attribute change; a rejected id list must not autoflush edits
    memberships = None
    if "group_ids" in data or "team_ids" in data:
        groups, teams = _memberships(client_user.client_id, user.id)
        if "group_ids" in data:
            groups = _resolve_group_ids(client_user.client_id, data.get("group_ids"))
        selected = _resolve_teams(client_user.client_id, data.get("team_ids"))
        if "team_ids" in data:
            teams = {t.id for t in selected}
            if "group_ids" not in data:
                groups |= {t.group_id for t in selected}
        default_group = get_default_group(client_user.client_id)
        if default_group is not None:
            groups.add(default_group.id)
        # Teams of removed groups drop out of the selection
        teams = {
            team_id for team_id in teams
            if db.session.get(Team, team_id).group_id in groups
        }
        memberships = (groups, teams)

    if "role" in data:
        try:
            client_user.role = _validate_role(data.get("role"))
        except ValidationError as exc:
            errors.update(exc.details)
    if "status" in data:
        if data.get("status") not in CLIENT_USER_STATUSES:
            errors["status"] = f"Status must be one of: {', '.join(CLIENT_USER_STATUSES)}"
        else:
            client_user.status = data["status"]
    for field in ("first_name", "last_name", "phone"):
        if field in data:
            setattr(user, field, str(data.get(field) or "").strip())

    if errors:
        db.session.expire(client_user)
        db.session.expire(user)
        raise ValidationError("Invalid client user data", details=errors)

    if memberships is not None:
        _sync_memberships(client_user.client_id, user.id, *memberships)

    db_commit_or_raise("ClientUser")
    logger.info("Client user updated: id=%s fields=%s", client_user.id, sorted(data),
                extra={"client_id": client_user.client_id})
    return client_user


def list_client_users(client_id: int) -> list[dict]:
    get_or_raise(Client, client_id, "Client")
    rows = (
        ClientUser.query
        .filter_by(client_id=client_id)
        .join(User, ClientUser.user_id == User.id)
        .order_by(User.last_name, User.first_name, User.email)
        .all()
    )
    return [serialize(row) for row in rows]


def remove_client_user(client_user_id: int):
    client_user = get_or_raise(ClientUser, client_user_id, "ClientUser")
    _sync_memberships(client_user.client_id, client_user.user_id, set(), set())
    db.session.delete(client_user)
    db_commit_or_raise("ClientUser")
    logger.info("Client user removed: id=%s", client_user_id)
