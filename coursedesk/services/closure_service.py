"""
Closure Service — persistence around the course-closure wizard.

Each operation loads the course's ``ClosureWizardSession``, applies one
``ClosureWizard`` method and stores the state back. ``submit`` writes the
``CourseClosure`` record and replaces the course's ``CourseVehicle`` rows
in the same transaction.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager

from flask import current_app

from coursedesk.core.exceptions import AuthenticationRequiredError, NotFoundError
from coursedesk.models import db
from coursedesk.models.account import User
from coursedesk.models.closure import ClosureWizardSession, CourseClosure
from coursedesk.models.course import CourseInstance
from coursedesk.models.vehicle import CourseVehicle
from coursedesk.services import enrollment_service, storage_service, vehicle_service
from coursedesk.services.closure_wizard import ClosureWizard, WizardStep, default_data
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

OPEN_ENROLLMENT_LABEL = "Open Enrollment"
# Identities a client may send before login completes
PLACEHOLDER_ACTORS = {"", "0", "anonymous", "00000000-0000-0000-0000-000000000000"}


def _latest_closure(course_id: int) -> CourseClosure | None:
    return (
        CourseClosure.query
        .filter_by(course_instance_id=course_id)
        .order_by(CourseClosure.created_at.desc(), CourseClosure.id.desc())
        .first()
    )


def _course_info(course: CourseInstance) -> dict:
    return {
        "program": course.program.name if course.program else "",
        "date": course.start_date.isoformat() if course.start_date else "",
        "client": course.host_client.name if course.host_client else OPEN_ENROLLMENT_LABEL,
    }


def _fresh_wizard(course: CourseInstance) -> ClosureWizard:
    wizard = ClosureWizard(data=default_data(_course_info(course)))
    closure = _latest_closure(course.id)
    if closure is not None:
        wizard.load_existing(closure.id, closure.document, closure.zipfile_url)
    return wizard


def _session_row(course_id: int) -> tuple[ClosureWizardSession, ClosureWizard]:
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    row = ClosureWizardSession.query.filter_by(course_instance_id=course.id).first()
    if row is None:
        wizard = _fresh_wizard(course)
        row = ClosureWizardSession(course_instance_id=course.id,
                                   state=json.dumps(wizard.to_dict()))
        db.session.add(row)
        return row, wizard
    return row, ClosureWizard.from_dict(json.loads(row.state or "{}"))


@contextmanager
def _wizard(course_id: int):
    """Yield the course's wizard and persist it when the block succeeds.

    Errors raised inside the block leave the stored state untouched.
    """
    row, wizard = _session_row(course_id)
    yield wizard
    row.state = json.dumps(wizard.to_dict())
    db_commit_or_raise("ClosureWizardSession")


def _view(course_id: int, wizard: ClosureWizard, role: str | None) -> dict:
    return dict(wizard.describe(role), course_instance_id=course_id)


def _file_url(wizard: ClosureWizard) -> str | None:
    return (wizard.data.get("file") or {}).get("url")


def _discard_archive(url: str | None):
    """Delete an archive that no stored closure references."""
    if url and CourseClosure.query.filter_by(zipfile_url=url).first() is None:
        storage_service.delete_closure_archive(url)


# ═════════════════════════════════════════════════════════════════════════
# Wizard operations
# ═════════════════════════════════════════════════════════════════════════


def open_wizard(course_id: int, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        pass
    return _view(course_id, wizard, role)


def reset_wizard(course_id: int, role: str | None = None) -> dict:
    """Discard in-progress state and start over from the stored closure
    (or from defaults)."""
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    row = ClosureWizardSession.query.filter_by(course_instance_id=course.id).first()
    previous = _file_url(ClosureWizard.from_dict(json.loads(row.state or "{}"))) if row else None
    ClosureWizardSession.query.filter_by(course_instance_id=course.id).delete(
        synchronize_session="fetch")
    db.session.flush()
    view = open_wizard(course.id, role)
    _discard_archive(previous)
    return view


def navigate(course_id: int, action: str, step: str | None = None,
             role: str | None = None) -> dict:
    """``action`` is ``next``, ``back`` or ``jump`` (with ``step``)."""
    with _wizard(course_id) as wizard:
        if action == "jump":
            wizard.jump_to(step)
        elif action == "back":
            wizard.back()
        else:
            wizard.next()
    return _view(course_id, wizard, role)


def update_form(course_id: int, patch: dict, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.update(patch)
    return _view(course_id, wizard, role)


def upload_closure_file(course_id: int, file_storage, role: str | None = None) -> dict:
    """Store the archive and attach it; a replaced archive is deleted once
    the new state is committed, a rejected one right away."""
    row, wizard = _session_row(course_id)
    wizard.ensure_editable()
    previous = _file_url(wizard)
    stored = storage_service.save_closure_archive(course_id, file_storage)
    try:
        wizard.attach_file(stored["filename"], stored["size"], stored["url"],
                           current_app.config["CLOSURE_MAX_FILE_BYTES"])
        row.state = json.dumps(wizard.to_dict())
        db_commit_or_raise("ClosureWizardSession")
    except Exception:
        storage_service.delete_closure_archive(stored["url"])
        raise
    if previous != stored["url"]:
        _discard_archive(previous)
    return _view(course_id, wizard, role)


def remove_closure_file(course_id: int, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        previous = _file_url(wizard)
        wizard.clear_file()
    _discard_archive(previous)
    return _view(course_id, wizard, role)


# ── vehicles ─────────────────────────────────────────────────────────────────


def add_vehicle(course_id: int, data: dict, role: str | None = None) -> dict:
    """Add a new vehicle, or a catalog vehicle when ``vehicle_id`` is given."""
    with _wizard(course_id) as wizard:
        if data.get("vehicle_id"):
            vehicle = vehicle_service.get_vehicle(data["vehicle_id"])
            wizard.add_catalog_vehicle(vehicle.to_dict())
        else:
            wizard.add_vehicle(**data)
    return _view(course_id, wizard, role)


def select_catalog_vehicle(course_id: int, index: int, vehicle_id: int,
                           role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        vehicle = vehicle_service.get_vehicle(vehicle_id)
        wizard.select_catalog_vehicle(index, vehicle.to_dict())
    return _view(course_id, wizard, role)


def update_vehicle(course_id: int, index: int, fields: dict, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.update_vehicle(index, fields, role)
    return _view(course_id, wizard, role)


def save_vehicle_to_catalog(course_id: int, index: int, role: str | None = None) -> dict:
    """Register a new wizard vehicle in the catalog; it then locks like
    any catalog vehicle."""
    with _wizard(course_id) as wizard:
        wizard.ensure_editable()
        entry = wizard.data["vehicles"][index] if 0 <= index < len(wizard.data["vehicles"]) else None
        if entry is None:
            raise NotFoundError(resource="Vehicle entry", resource_id=index)
        if entry.get("vehicle_id") is None:
            vehicle = vehicle_service.create_vehicle(_catalog_payload(entry), commit=False)
            wizard.mark_vehicle_saved(index, vehicle.id)
    return _view(course_id, wizard, role)


def remove_vehicle(course_id: int, index: int, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.remove_vehicle(index)
    return _view(course_id, wizard, role)


def _catalog_payload(entry: dict) -> dict:
    return {
        "make": entry.get("make"),
        "model": entry.get("model"),
        "year": entry.get("year"),
        "latacc": entry.get("lat_acc"),
    }


# ── exercises ────────────────────────────────────────────────────────────────


def set_core_exercise(course_id: int, name: str, data: dict, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.set_core_exercise(name, data.get("chord"), data.get("mo"))
    return _view(course_id, wizard, role)


def update_final_exercise(course_id: int, patch: dict, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.update_final_exercise(patch)
    return _view(course_id, wizard, role)


def add_additional_exercise(course_id: int, data: dict, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.add_additional_exercise(
            data.get("name"),
            bool(data.get("is_measured", False)),
            data.get("measurement_type"),
            data.get("parameters"),
        )
    return _view(course_id, wizard, role)


def remove_additional_exercise(course_id: int, exercise_id: str, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        wizard.remove_additional_exercise(exercise_id)
    return _view(course_id, wizard, role)


# ═════════════════════════════════════════════════════════════════════════
# Review / submit / edit
# ═════════════════════════════════════════════════════════════════════════


def review(course_id: int, role: str | None = None) -> dict:
    """Everything the review step shows, with the live enrolled students."""
    with _wizard(course_id) as wizard:
        pass
    result = _view(course_id, wizard, role)
    result["students"] = enrollment_service.enrolled_students(course_id)
    return result


def _resolve_actor(actor_user_id) -> User:
    """The authenticated user who closes the course.

    Placeholder identities are not a user; submitting without a real one
    is an authentication failure.
    """
    if actor_user_id is None or str(actor_user_id).strip().lower() in PLACEHOLDER_ACTORS:
        raise AuthenticationRequiredError("A signed-in user is required to submit a closure")
    try:
        user_id = int(actor_user_id)
    except (TypeError, ValueError):
        raise AuthenticationRequiredError("A signed-in user is required to submit a closure")
    user = db.session.get(User, user_id)
    if user is None:
        raise AuthenticationRequiredError("A signed-in user is required to submit a closure")
    return user


def submit(course_id: int, actor_user_id, role: str | None = None) -> dict:
    """Persist the closure and the course's vehicle list."""
    row, wizard = _session_row(course_id)
    wizard.ensure_submittable()
    user = _resolve_actor(actor_user_id)

    for index, entry in enumerate(wizard.data["vehicles"]):
        if entry.get("make") and entry.get("vehicle_id") is None:
            vehicle = vehicle_service.create_vehicle(_catalog_payload(entry), commit=False)
            wizard.mark_vehicle_saved(index, vehicle.id)

    document = wizard.document(enrollment_service.enrolled_students(course_id))
    info = wizard.data["course_info"]
    file_info = wizard.data.get("file") or {}

    closure = None
    if wizard.is_editing and wizard.closure_id:
        closure = db.session.get(CourseClosure, wizard.closure_id)
    if closure is None:
        closure = CourseClosure(course_instance_id=course_id, status="draft", closed_by=user.id)
        db.session.add(closure)
    closure.units = info.get("units") or "MPH"
    closure.country = info.get("country")
    closure.closure_data = json.dumps(document)
    replaced_url = None
    if file_info.get("url"):
        if closure.zipfile_url and closure.zipfile_url != file_info["url"]:
            replaced_url = closure.zipfile_url
        closure.zipfile_url = file_info["url"]
    db.session.flush()

    CourseVehicle.query.filter_by(course_instance_id=course_id).delete(synchronize_session="fetch")
    for entry in wizard.data["vehicles"]:
        if entry.get("make") and entry.get("vehicle_id"):
            db.session.add(CourseVehicle(
                course_instance_id=course_id,
                vehicle_id=entry["vehicle_id"],
                car_number=entry["car"],
            ))

    was_editing = wizard.is_editing
    wizard.mark_submitted(closure.id)
    row.state = json.dumps(wizard.to_dict())
    db_commit_or_raise("CourseClosure")
    _discard_archive(replaced_url)

    logger.info(
        "Course closure %s: course=%s closure=%s by user=%s vehicles=%d",
        "updated" if was_editing else "submitted", course_id, closure.id, user.id,
        len(document["vehicles"]),
        extra={"course_instance_id": course_id, "user_id": user.id},
    )
    result = _view(course_id, wizard, role)
    result["closure"] = closure.to_dict()
    result["analytics_url"] = analytics_url(course_id)
    return result


def begin_edit(course_id: int, role: str | None = None) -> dict:
    with _wizard(course_id) as wizard:
        if wizard.step == WizardStep.COMPLETED and wizard.closure_id:
            closure = db.session.get(CourseClosure, wizard.closure_id)
            if closure is not None:
                wizard.load_existing(closure.id, closure.document, closure.zipfile_url)
        wizard.begin_edit()
    return _view(course_id, wizard, role)


# ═════════════════════════════════════════════════════════════════════════
# Stored closures
# ═════════════════════════════════════════════════════════════════════════


def get_closure(course_id: int) -> CourseClosure:
    get_or_raise(CourseInstance, course_id, "CourseInstance")
    closure = _latest_closure(course_id)
    if closure is None:
        raise NotFoundError(resource="CourseClosure", resource_id=course_id)
    return closure


def closure_download(course_id: int) -> tuple[str, str]:
    """(filename, JSON text) of the stored closure document."""
    closure = get_closure(course_id)
    return f"course_{course_id}_closure.json", json.dumps(closure.document, indent=2)


def analytics_url(course_id: int) -> str:
    return current_app.config["ANALYTICS_URL_TEMPLATE"].format(course_id=course_id)
