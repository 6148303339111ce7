"""
Driver Training Admin Console
Vehicle catalog models.

Models:
    - Vehicle: catalog entry (make, model, year, lateral acceleration)
    - CourseVehicle: vehicle used in a course instance, with its car number
"""

from datetime import datetime, timezone

from coursedesk.models import db


class Vehicle(db.Model):
    __tablename__ = "vehicles"

    id = db.Column(db.Integer, primary_key=True)
    make = db.Column(db.String(100), nullable=False)
    model = db.Column(db.String(100), default="")
    year = db.Column(db.Integer, nullable=True)
    latacc = db.Column(db.Float, nullable=True, comment="lateral acceleration (g)")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "latacc": self.latacc,
        }

    def __repr__(self):
        return f"<Vehicle {self.id}: {self.year} {self.make} {self.model}>"


class CourseVehicle(db.Model):
    __tablename__ = "course_vehicles"

    id = db.Column(db.Integer, primary_key=True)
    course_instance_id = db.Column(
        db.Integer, db.ForeignKey("course_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    vehicle_id = db.Column(
        db.Integer, db.ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False,
    )
    car_number = db.Column(db.Integer, nullable=False)

    vehicle = db.relationship("Vehicle", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "course_instance_id": self.course_instance_id,
            "vehicle_id": self.vehicle_id,
            "car_number": self.car_number,
            "vehicle": self.vehicle.to_dict() if self.vehicle else None,
        }
