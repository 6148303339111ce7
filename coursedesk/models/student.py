"""
Driver Training Admin Console
Trainee and enrollment models.

Models:
    - Student: trainee record, homed in exactly one team
    - SessionAttendee: enrollment of a student in a course instance
"""

from datetime import datetime, timezone

from coursedesk.models import db

STUDENT_STATUSES = ("active", "inactive")
ATTENDEE_STATUSES = ("pending", "confirmed", "cancelled")


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=True)
    employee_number = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active",
                       comment="active | inactive")
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    team = db.relationship("Team", lazy="joined")

    @property
    def client_id(self):
        """Owning client, derived through team → group."""
        if self.team is None or self.team.group is None:
            return None
        return self.team.group.client_id

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "client_id": self.client_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "employee_number": self.employee_number,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Student {self.id}: {self.email}>"


class SessionAttendee(db.Model):
    """Enrollment row. Cancelling flips ``status``; rows are never deleted."""

    __tablename__ = "session_attendees"
    __table_args__ = (
        db.UniqueConstraint("student_id", "course_instance_id", name="uq_attendee_student_course"),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer, db.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    course_instance_id = db.Column(
        db.Integer, db.ForeignKey("course_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | confirmed | cancelled")
    special_requests = db.Column(db.Text, nullable=True)
    attendance_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    student = db.relationship("Student", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_instance_id": self.course_instance_id,
            "status": self.status,
            "special_requests": self.special_requests,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<SessionAttendee student={self.student_id} course={self.course_instance_id} {self.status}>"
