"""
Driver Training Admin Console
Person accounts.

Models:
    - User: a person who can sign in; linked to clients via ClientUser
"""

from datetime import datetime, timezone

from coursedesk.models import db

USER_ROLES = ("superadmin", "admin", "instructor", "user")
USER_STATUSES = ("active", "inactive", "suspended")


class User(db.Model):
    """Platform account. ``role`` is the platform-wide role; ``superadmin``
    is the elevated role that may edit locked vehicle fields."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    first_name = db.Column(db.String(100), default="")
    last_name = db.Column(db.String(100), default="")
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(
        db.String(20),
        nullable=False,
        default="user",
        comment="superadmin | admin | instructor | user",
    )
    status = db.Column(db.String(20), nullable=False, default="active")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "role": self.role,
            "status": self.status,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
