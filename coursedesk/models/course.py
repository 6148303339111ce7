"""
Driver Training Admin Console
Course scheduling models.

Models:
    - Program: a course product (curriculum, capacity)
    - Venue: where course instances run
    - CourseInstance: a scheduled occurrence of a program
    - CourseAllocation: seats of a course instance reserved for one client
"""

from datetime import datetime, timezone

from coursedesk.models import db


# ── Program / Venue ──────────────────────────────────────────────────────────


class Program(db.Model):
    __tablename__ = "programs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, default="")
    duration_days = db.Column(db.Integer, nullable=True)
    max_students = db.Column(db.Integer, nullable=True)
    min_students = db.Column(db.Integer, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    lvl = db.Column(db.Integer, nullable=True)
    measured = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "duration_days": self.duration_days,
            "max_students": self.max_students,
            "min_students": self.min_students,
            "price": float(self.price) if self.price is not None else None,
            "lvl": self.lvl,
            "measured": bool(self.measured),
        }

    def __repr__(self):
        return f"<Program {self.id}: {self.name}>"


class Venue(db.Model):
    __tablename__ = "venues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    short_name = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    region = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "address": self.address,
            "region": self.region,
            "country": self.country,
        }

    def __repr__(self):
        return f"<Venue {self.id}: {self.name}>"


# ── CourseInstance ───────────────────────────────────────────────────────────


class CourseInstance(db.Model):
    """
    A scheduled course. Open-enrollment courses are sold to any client;
    private courses belong to ``host_client_id``.
    """

    __tablename__ = "course_instances"

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id"), nullable=False, index=True)
    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    is_open_enrollment = db.Column(db.Boolean, nullable=False, default=False)
    host_client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True)
    private_seats_allocated = db.Column(db.Integer, nullable=True)
    visibility_type = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    program = db.relationship("Program", lazy="joined")
    venue = db.relationship("Venue", lazy="joined")
    host_client = db.relationship("Client", lazy="joined")
    allocations = db.relationship(
        "CourseAllocation", backref="course_instance", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def capacity(self):
        """Seats available for allocation: private seat count when set,
        otherwise the program's max_students (0 when unknown)."""
        if not self.is_open_enrollment and self.private_seats_allocated:
            return self.private_seats_allocated
        if self.program is not None and self.program.max_students:
            return self.program.max_students
        return 0

    def to_dict(self):
        return {
            "id": self.id,
            "program_id": self.program_id,
            "program_name": self.program.name if self.program else None,
            "venue_id": self.venue_id,
            "venue_name": self.venue.name if self.venue else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_open_enrollment": bool(self.is_open_enrollment),
            "host_client_id": self.host_client_id,
            "host_client_name": self.host_client.name if self.host_client else None,
            "private_seats_allocated": self.private_seats_allocated,
            "visibility_type": self.visibility_type,
            "capacity": self.capacity,
        }

    def __repr__(self):
        return f"<CourseInstance {self.id}: program={self.program_id} {self.start_date}>"


class CourseAllocation(db.Model):
    __tablename__ = "course_allocations"

    id = db.Column(db.Integer, primary_key=True)
    course_instance_id = db.Column(
        db.Integer, db.ForeignKey("course_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    seats_allocated = db.Column(db.Integer, nullable=False)

    client = db.relationship("Client", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "course_instance_id": self.course_instance_id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else "",
            "seats_allocated": self.seats_allocated,
        }

    def __repr__(self):
        return f"<CourseAllocation course={self.course_instance_id} client={self.client_id} seats={self.seats_allocated}>"
