"""
Driver Training Admin Console
Client organisation models.

Models:
    - Client: customer organisation that buys training seats
    - Group: subdivision of a client; one is the default group
    - Team: subdivision of a group; home of students
    - ClientUser: membership of a person account in a client, with a role
    - UserGroup / UserTeam: group and team memberships of an account
    - Invitation: pending email invitation to join a client
"""

from datetime import datetime, timezone

from coursedesk.models import db

CLIENT_USER_ROLES = ("client_admin", "manager", "supervisor")
CLIENT_USER_STATUSES = ("active", "pending", "invited", "inactive", "suspended")
INVITATION_STATUSES = ("pending", "accepted", "expired")
DEFAULT_PRIMARY_COLOR = "#9b87f5"
DEFAULT_SECONDARY_COLOR = "#8E9196"


# ── Client ───────────────────────────────────────────────────────────────────


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active",
                       comment="active | inactive")
    contact_email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)
    primary_color = db.Column(db.String(7), nullable=True, comment="#RRGGBB")
    secondary_color = db.Column(db.String(7), nullable=True, comment="#RRGGBB")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    groups = db.relationship(
        "Group", backref="client", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "contact_email": self.contact_email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "logo_url": self.logo_url,
            "primary_color": self.primary_color or DEFAULT_PRIMARY_COLOR,
            "secondary_color": self.secondary_color or DEFAULT_SECONDARY_COLOR,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Client {self.id}: {self.name}>"


# ── Group / Team ─────────────────────────────────────────────────────────────


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    teams = db.relationship(
        "Team", backref="group", lazy="select",
        cascade="all, delete-orphan", order_by="Team.id",
    )

    def to_dict(self, include_teams=False):
        result = {
            "id": self.id,
            "client_id": self.client_id,
            "name": self.name,
            "description": self.description,
            "is_default": bool(self.is_default),
        }
        if include_teams:
            result["teams"] = [t.to_dict() for t in self.teams]
        return result

    def __repr__(self):
        return f"<Group {self.id}: {self.name} default={self.is_default}>"


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer, db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {"id": self.id, "group_id": self.group_id, "name": self.name}

    def __repr__(self):
        return f"<Team {self.id}: {self.name}>"


# ── Memberships ──────────────────────────────────────────────────────────────


class ClientUser(db.Model):
    """Membership of a person account in a client organisation."""

    __tablename__ = "client_users"
    __table_args__ = (
        db.UniqueConstraint("client_id", "user_id", name="uq_client_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="supervisor",
                     comment="client_admin | manager | supervisor")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="active | pending | invited | inactive | suspended")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", lazy="joined")
    client = db.relationship("Client", lazy="select")

    def to_dict(self, group_ids=None, team_ids=None):
        result = {
            "id": self.id,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "role": self.role,
            "status": self.status,
            "user": self.user.to_dict() if self.user else None,
        }
        if group_ids is not None:
            result["group_ids"] = group_ids
        if team_ids is not None:
            result["team_ids"] = team_ids
        return result

    def __repr__(self):
        return f"<ClientUser client={self.client_id} user={self.user_id} role={self.role}>"


class UserGroup(db.Model):
    __tablename__ = "user_groups"
    __table_args__ = (
        db.UniqueConstraint("user_id", "group_id", name="uq_user_group"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    group_id = db.Column(
        db.Integer, db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False,
    )


class UserTeam(db.Model):
    __tablename__ = "user_teams"
    __table_args__ = (
        db.UniqueConstraint("user_id", "team_id", name="uq_user_team"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False,
    )


# ── Invitation ───────────────────────────────────────────────────────────────


class Invitation(db.Model):
    __tablename__ = "invitations"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="supervisor")
    token = db.Column(db.String(128), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | accepted | expired")
    invitation_type = db.Column(db.String(30), nullable=False, default="client_user")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    client = db.relationship("Client", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "invitation_type": self.invitation_type,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Invitation {self.id}: {self.email} ({self.status})>"
