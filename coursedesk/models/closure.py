"""
Driver Training Admin Console
Course closure models.

Models:
    - CourseClosure: submitted end-of-course record (JSON document + archive)
    - ClosureWizardSession: in-progress wizard state for one course instance
"""

import json
from datetime import datetime, timezone

from coursedesk.models import db


class CourseClosure(db.Model):
    __tablename__ = "course_closures"

    id = db.Column(db.Integer, primary_key=True)
    course_instance_id = db.Column(
        db.Integer, db.ForeignKey("course_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="draft")
    units = db.Column(db.String(10), nullable=False, default="MPH", comment="MPH | KPH")
    country = db.Column(db.String(100), nullable=True)
    zipfile_url = db.Column(db.String(500), nullable=True)
    closure_data = db.Column(db.Text, nullable=False, default="{}")
    analytics_data = db.Column(db.Text, nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    closed_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
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
    def document(self):
        return json.loads(self.closure_data or "{}")

    def to_dict(self):
        return {
            "id": self.id,
            "course_instance_id": self.course_instance_id,
            "status": self.status,
            "units": self.units,
            "country": self.country,
            "zipfile_url": self.zipfile_url,
            "closure_data": self.document,
            "closed_by": self.closed_by,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CourseClosure {self.id}: course={self.course_instance_id} {self.status}>"


class ClosureWizardSession(db.Model):
    """Shared form state of the closure wizard, one row per course instance."""

    __tablename__ = "closure_wizard_sessions"

    id = db.Column(db.Integer, primary_key=True)
    course_instance_id = db.Column(
        db.Integer, db.ForeignKey("course_instances.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    state = db.Column(db.Text, nullable=False, default="{}")
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<ClosureWizardSession course={self.course_instance_id}>"
