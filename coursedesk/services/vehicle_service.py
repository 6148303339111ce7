"""Vehicle catalog: search, create, and role-gated updates."""

from __future__ import annotations

import logging
import math

from sqlalchemy import or_

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.vehicle import Vehicle
from coursedesk.services.permission_service import ensure_can_edit_fields
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def search_vehicles(query: str | None, limit: int = 10) -> list[Vehicle]:
    q = Vehicle.query
    if query:
        like = f"%{query.strip()}%"
        q = q.filter(or_(Vehicle.make.ilike(like), Vehicle.model.ilike(like)))
    return q.order_by(Vehicle.make, Vehicle.model, Vehicle.year.desc()).limit(limit).all()


def _clean(data: dict, *, partial: bool) -> dict:
    errors = {}
    cleaned = {}
    if "make" in data or not partial:
        make = str(data.get("make") or "").strip()
        if not make:
            errors["make"] = "Make is required"
        cleaned["make"] = make
    if "model" in data:
        cleaned["model"] = str(data.get("model") or "").strip()
    if "year" in data:
        try:
            cleaned["year"] = int(data["year"]) if data["year"] not in (None, "") else None
        except (TypeError, ValueError, OverflowError):
            errors["year"] = "Must be a whole number"
    if "latacc" in data:
        try:
            cleaned["latacc"] = float(data["latacc"]) if data["latacc"] not in (None, "") else None
        except (TypeError, ValueError, OverflowError):
            errors["latacc"] = "Must be a number"
        else:
            if cleaned["latacc"] is not None and not math.isfinite(cleaned["latacc"]):
                errors["latacc"] = "Must be a finite number"
    if errors:
        raise ValidationError("Invalid vehicle data", details=errors)
    return cleaned


def create_vehicle(data: dict, *, commit: bool = True) -> Vehicle:
    vehicle = Vehicle(**_clean(data, partial=False))
    db.session.add(vehicle)
    db.session.flush()
    if commit:
        db_commit_or_raise("Vehicle")
        logger.info("Vehicle created: id=%s %s %s", vehicle.id, vehicle.make, vehicle.model)
    return vehicle


def update_vehicle(vehicle_id: int, data: dict, role: str | None) -> Vehicle:
    """Catalog vehicles are existing vehicles: year and latacc need the
    elevated role."""
    vehicle = get_or_raise(Vehicle, vehicle_id, "Vehicle")
    cleaned = _clean(data, partial=True)
    touched = {"lat_acc" if key == "latacc" else key for key in cleaned}
    ensure_can_edit_fields(role, touched, is_new_entity=False)
    for key, value in cleaned.items():
        setattr(vehicle, key, value)
    db_commit_or_raise("Vehicle")
    logger.info("Vehicle updated: id=%s fields=%s", vehicle.id, sorted(cleaned))
    return vehicle


def get_vehicle(vehicle_id: int) -> Vehicle:
    return get_or_raise(Vehicle, vehicle_id, "Vehicle")
