"""
Course Closure Wizard — explicit state object for the closure flow.

Steps (strictly linear):
    basic → vehicles → exercises → review → completed

``completed`` is entered by a successful submit or by loading an existing
closure record. ``begin_edit()`` rewinds ``completed → review`` with
``is_editing`` set; in edit mode the course data file becomes optional.

The wizard is pure state: no database access. ``closure_service`` loads
it from a ``ClosureWizardSession`` row, applies one operation and stores
it back.

State shape (``to_dict()``):
    {
      "step": "basic",
      "is_editing": false,
      "closure_id": null,
      "data": {
        "course_info": {"units", "country", "program", "date", "client"},
        "notes": "",
        "file": null | {"filename", "size", "url"},
        "vehicles": [{"car", "make", "model", "year", "lat_acc",
                      "vehicle_id", "is_new", "is_saved"}],
        "course_layout": {...},
        "additional_exercises": [{"id", "name", "is_measured",
                                  "measurement_type", "parameters"}]
      }
    }
"""

from __future__ import annotations

import copy
import logging
import math
import os
import uuid
from datetime import datetime
from enum import Enum

from coursedesk.core.exceptions import NotFoundError, ValidationError
from coursedesk.services import closure_document
from coursedesk.services.permission_service import (
    SENSITIVE_VEHICLE_FIELDS,
    can_edit_sensitive_field,
    ensure_can_edit_fields,
)

logger = logging.getLogger(__name__)


# ── Steps ────────────────────────────────────────────────────────────────────


class WizardStep(str, Enum):
    BASIC = "basic"
    VEHICLES = "vehicles"
    EXERCISES = "exercises"
    REVIEW = "review"
    COMPLETED = "completed"


STEP_ORDER = [
    WizardStep.BASIC,
    WizardStep.VEHICLES,
    WizardStep.EXERCISES,
    WizardStep.REVIEW,
    WizardStep.COMPLETED,
]
EDITABLE_STEPS = STEP_ORDER[:-1]

STEP_INFO = {
    WizardStep.BASIC: {
        "title": "Basic Information",
        "description": "Units, country, notes and the course data file",
    },
    WizardStep.VEHICLES: {
        "title": "Vehicles",
        "description": "Cars used during the course",
    },
    WizardStep.EXERCISES: {
        "title": "Exercises",
        "description": "Slalom, lane change, final exercise and additional exercises",
    },
    WizardStep.REVIEW: {
        "title": "Review & Submit",
        "description": "Check all data before submitting the closure",
    },
    WizardStep.COMPLETED: {
        "title": "Completed",
        "description": "The course closure has been submitted",
    },
}

# step -> {action: target step}
TRANSITIONS = {
    WizardStep.BASIC: {"next": WizardStep.VEHICLES},
    WizardStep.VEHICLES: {"next": WizardStep.EXERCISES, "back": WizardStep.BASIC},
    WizardStep.EXERCISES: {"next": WizardStep.REVIEW, "back": WizardStep.VEHICLES},
    WizardStep.REVIEW: {"back": WizardStep.EXERCISES, "submit": WizardStep.COMPLETED},
    WizardStep.COMPLETED: {"edit": WizardStep.REVIEW},
}


# ── Constants & defaults ─────────────────────────────────────────────────────

UNITS = ("MPH", "KPH")
MEASUREMENT_TYPES = ("latacc", "time")
PENALTY_TYPES = ("time", "annulled")
DEFAULT_LAT_ACC = 0.8
MAX_ARCHIVE_BYTES = 10 * 1024 * 1024
FILE_REQUIRED_MESSAGE = (
    "Course data file is required. "
    "Please go back to the Basic Information step to upload it."
)
UPDATABLE_SECTIONS = ("course_info", "notes", "course_layout")
VEHICLE_FIELDS = ("make", "model", "year", "lat_acc")


def default_course_layout() -> dict:
    return {
        "slalom": {"chord": 100, "mo": 15},
        "lane_change": {"chord": 120, "mo": 20},
        "final_exercise": {
            "ideal_time_sec": 70,
            "cone_penalty_sec": 3,
            "door_penalty_sec": 5,
            "slalom": {"chord": 100, "mo": 15},
            "lane_change": {"chord": 120, "mo": 20},
            "reverse_time": None,
        },
    }


def default_data(course_info: dict | None = None) -> dict:
    info = {"units": "MPH", "country": "USA", "program": "", "date": "", "client": ""}
    info.update(course_info or {})
    return {
        "course_info": info,
        "notes": "",
        "file": None,
        "vehicles": [],
        "course_layout": default_course_layout(),
        "additional_exercises": [],
    }


def _deep_merge(base: dict, patch: dict) -> dict:
    """Merge ``patch`` into ``base`` in place. Dicts merge key by key;
    lists and scalars are replaced."""
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


# ── Field validation ─────────────────────────────────────────────────────────


def _as_number(value, field: str, *, allow_none: bool = False):
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required", details={field: "Required"})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={field: "Must be a number"})
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be a number", details={field: "Must be a number"})
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number", details={field: "Must be a finite number"})
    if number < 0:
        raise ValidationError(f"{field} must not be negative", details={field: "Must not be negative"})
    return int(number) if number.is_integer() else number


def _ensure_object(value, field: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", details={field: "Must be an object"})
    return value


def _normalize_chord_mo(params: dict, prefix: str) -> dict:
    params = _ensure_object(params, prefix)
    return {
        "chord": _as_number(params.get("chord"), f"{prefix}.chord"),
        "mo": _as_number(params.get("mo"), f"{prefix}.mo"),
    }


def _normalize_layout(layout: dict) -> dict:
    layout = _ensure_object(layout, "course_layout")
    final = _ensure_object(layout.get("final_exercise"), "course_layout.final_exercise")
    return {
        "slalom": _normalize_chord_mo(layout.get("slalom"), "course_layout.slalom"),
        "lane_change": _normalize_chord_mo(layout.get("lane_change"), "course_layout.lane_change"),
        "final_exercise": {
            "ideal_time_sec": _as_number(
                final.get("ideal_time_sec"), "course_layout.final_exercise.ideal_time_sec"),
            "cone_penalty_sec": _as_number(
                final.get("cone_penalty_sec"), "course_layout.final_exercise.cone_penalty_sec"),
            "door_penalty_sec": _as_number(
                final.get("door_penalty_sec"), "course_layout.final_exercise.door_penalty_sec"),
            "slalom": _normalize_chord_mo(
                final.get("slalom"), "course_layout.final_exercise.slalom"),
            "lane_change": _normalize_chord_mo(
                final.get("lane_change"), "course_layout.final_exercise.lane_change"),
            "reverse_time": _as_number(
                final.get("reverse_time"), "course_layout.final_exercise.reverse_time",
                allow_none=True),
        },
    }


def _validate_course_info(info: dict):
    info = _ensure_object(info, "course_info")
    if info.get("units") not in UNITS:
        raise ValidationError(
            "Invalid units",
            details={"units": f"Units must be one of: {', '.join(UNITS)}"},
        )


def validate_archive(filename: str | None, size: int | None, max_bytes: int = MAX_ARCHIVE_BYTES):
    """Accept a single ``.zip`` file of at most ``max_bytes``."""
    if not filename or not filename.lower().endswith(".zip"):
        raise ValidationError(
            "Invalid course data file",
            details={"file": "Please upload a ZIP file"},
        )
    if size is None or size < 0 or size > max_bytes:
        raise ValidationError(
            "Invalid course data file",
            details={"file": f"File size must be less than {max_bytes // (1024 * 1024)}MB"},
        )


def _apply_vehicle_fields(entry: dict, fields: dict):
    if "make" in fields:
        entry["make"] = str(fields.get("make") or "").strip()
    if "model" in fields:
        entry["model"] = str(fields.get("model") or "").strip()
    if "year" in fields:
        year = fields.get("year")
        if year in (None, ""):
            entry["year"] = None
        else:
            try:
                year = int(year)
            except (TypeError, ValueError, OverflowError):
                raise ValidationError("Invalid vehicle year", details={"year": "Must be a whole number"})
            if year < 1900 or year > datetime.now().year + 1:
                raise ValidationError("Invalid vehicle year", details={"year": "Year is out of range"})
            entry["year"] = year
    if "lat_acc" in fields:
        entry["lat_acc"] = _as_number(fields.get("lat_acc"), "lat_acc", allow_none=True)


def build_additional_exercise(
    name: str | None,
    is_measured: bool = False,
    measurement_type: str | None = None,
    parameters: dict | None = None,
    exercise_id: str | None = None,
) -> dict:
    """Validate and build an additional exercise.

    Unmeasured exercises carry no parameters. Measured exercises use exactly
    one scheme: ``latacc`` (chord + mo) or ``time`` (ideal time + penalty
    that is either a time value or an annulled run). Parameters of the other
    scheme are dropped.
    """
    errors = {}
    name = str(name or "").strip()
    if not name:
        errors["name"] = "Exercise name is required"
    params = parameters or {}
    if not isinstance(params, dict):
        errors["parameters"] = "Must be an object"
        params = {}
    result_params: dict = {}

    if is_measured:
        if measurement_type not in MEASUREMENT_TYPES:
            errors["measurement_type"] = f"Measurement type must be one of: {', '.join(MEASUREMENT_TYPES)}"
        elif measurement_type == "latacc":
            for key in ("chord", "mo"):
                try:
                    result_params[key] = _as_number(params.get(key), key)
                except ValidationError as exc:
                    errors.update(exc.details)
        else:
            try:
                result_params["ideal_time"] = _as_number(params.get("ideal_time"), "ideal_time")
            except ValidationError as exc:
                errors.update(exc.details)
            penalty_type = params.get("penalty_type")
            if penalty_type not in PENALTY_TYPES:
                errors["penalty_type"] = f"Penalty type must be one of: {', '.join(PENALTY_TYPES)}"
            else:
                result_params["penalty_type"] = penalty_type
                if penalty_type == "time":
                    try:
                        result_params["penalty_value"] = _as_number(
                            params.get("penalty_value"), "penalty_value")
                    except ValidationError as exc:
                        errors.update(exc.details)
                else:
                    result_params["penalty_value"] = None
    else:
        measurement_type = None

    if errors:
        raise ValidationError("Invalid additional exercise", details=errors)

    return {
        "id": exercise_id or str(uuid.uuid4()),
        "name": name,
        "is_measured": bool(is_measured),
        "measurement_type": measurement_type,
        "parameters": result_params,
    }


# ═════════════════════════════════════════════════════════════════════════
# Wizard
# ═════════════════════════════════════════════════════════════════════════


class ClosureWizard:
    """Accumulated closure form state plus the current step."""

    def __init__(self, step=WizardStep.BASIC, data=None, is_editing=False, closure_id=None):
        self.step = WizardStep(step)
        self.data = data if data is not None else default_data()
        self.is_editing = bool(is_editing)
        self.closure_id = closure_id

    @classmethod
    def from_dict(cls, state: dict | None) -> "ClosureWizard":
        state = state or {}
        data = _deep_merge(default_data(), state.get("data") or {})
        return cls(
            step=state.get("step", WizardStep.BASIC.value),
            data=data,
            is_editing=state.get("is_editing", False),
            closure_id=state.get("closure_id"),
        )

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "is_editing": self.is_editing,
            "closure_id": self.closure_id,
            "data": copy.deepcopy(self.data),
        }

    def describe(self, role: str | None = None) -> dict:
        """State plus derived view data (step list, progress, permissions)."""
        current = STEP_ORDER.index(self.step)
        result = self.to_dict()
        result["progress"] = self.progress()
        result["steps"] = [
            {
                "key": step.value,
                "title": STEP_INFO[step]["title"],
                "description": STEP_INFO[step]["description"],
                "status": "done" if i < current else ("current" if i == current else "upcoming"),
            }
            for i, step in enumerate(STEP_ORDER)
        ]
        for entry in result["data"]["vehicles"]:
            entry["can_edit_sensitive"] = can_edit_sensitive_field(
                role, entry.get("is_new") and not entry.get("is_saved"))
        result["issues"] = self.review_issues()
        result["can_submit"] = self.can_submit
        return result

    # ── navigation ───────────────────────────────────────────────────────

    def _transition(self, action: str) -> WizardStep:
        target = TRANSITIONS[self.step].get(action)
        if target is None:
            raise ValidationError(
                f"Cannot {action} from step '{self.step.value}'",
                details={"step": self.step.value},
            )
        logger.debug("Closure wizard %s: %s → %s", action, self.step.value, target.value)
        self.step = target
        return self.step

    def next(self) -> WizardStep:
        return self._transition("next")

    def back(self) -> WizardStep:
        return self._transition("back")

    def jump_to(self, step) -> WizardStep:
        try:
            target = WizardStep(step)
        except ValueError:
            raise ValidationError(f"Unknown step '{step}'", details={"step": str(step)})
        if self.step == WizardStep.COMPLETED or target not in EDITABLE_STEPS:
            raise ValidationError(
                f"Cannot jump from '{self.step.value}' to '{target.value}'",
                details={"step": target.value},
            )
        self.step = target
        return self.step

    def progress(self) -> int:
        index = STEP_ORDER.index(self.step)
        return min(100, (index + 1) * 100 // len(EDITABLE_STEPS))

    def ensure_editable(self):
        if self.step == WizardStep.COMPLETED:
            raise ValidationError(
                "Closure already submitted; start an edit first",
                details={"step": self.step.value},
            )

    # ── shared form state ────────────────────────────────────────────────

    def update(self, patch: dict) -> dict:
        """Merge a partial patch into the form state.

        Only ``course_info``, ``notes`` and ``course_layout`` are patchable;
        vehicles, exercises and the file have dedicated operations. Changing
        the core slalom or lane-change parameters also updates the final
        exercise's nested copy unless the same patch sets that copy.
        """
        self.ensure_editable()
        if not isinstance(patch, dict):
            raise ValidationError("Patch must be an object")
        unknown = sorted(set(patch) - set(UPDATABLE_SECTIONS))
        if unknown:
            raise ValidationError(
                f"Cannot update: {', '.join(unknown)}",
                details={key: "Not a patchable section" for key in unknown},
            )
        for key in ("course_info", "course_layout"):
            if key in patch:
                _ensure_object(patch[key], key)
        if patch.get("notes") is not None and not isinstance(patch["notes"], str):
            raise ValidationError("notes must be text", details={"notes": "Must be text"})

        candidate = copy.deepcopy(self.data)
        _deep_merge(candidate, patch)

        layout_patch = patch.get("course_layout")
        if isinstance(layout_patch, dict):
            final_patch = _ensure_object(
                layout_patch.get("final_exercise"), "course_layout.final_exercise")
            for name in ("slalom", "lane_change"):
                if isinstance(layout_patch.get(name), dict) and name not in final_patch:
                    candidate["course_layout"]["final_exercise"][name] = dict(
                        candidate["course_layout"][name])

        _validate_course_info(candidate["course_info"])
        candidate["course_layout"] = _normalize_layout(candidate["course_layout"])
        candidate["notes"] = str(candidate.get("notes") or "")
        self.data = candidate
        return self.data

    def attach_file(self, filename: str, size: int, url: str | None = None,
                    max_bytes: int = MAX_ARCHIVE_BYTES):
        self.ensure_editable()
        validate_archive(filename, size, max_bytes)
        self.data["file"] = {"filename": filename, "size": size, "url": url}

    def clear_file(self):
        self.ensure_editable()
        self.data["file"] = None

    # ── vehicles ─────────────────────────────────────────────────────────

    def _vehicle(self, index: int) -> dict:
        vehicles = self.data["vehicles"]
        if not isinstance(index, int) or index < 0 or index >= len(vehicles):
            raise NotFoundError(resource="Vehicle entry", resource_id=index)
        return vehicles[index]

    def _renumber(self):
        for i, entry in enumerate(self.data["vehicles"]):
            entry["car"] = i + 1

    def add_vehicle(self, **fields) -> dict:
        """Append a freshly entered vehicle; every field stays editable."""
        self.ensure_editable()
        entry = {
            "car": len(self.data["vehicles"]) + 1,
            "make": "",
            "model": "",
            "year": datetime.now().year,
            "lat_acc": DEFAULT_LAT_ACC,
            "vehicle_id": None,
            "is_new": True,
            "is_saved": False,
        }
        _apply_vehicle_fields(entry, {k: v for k, v in fields.items() if k in VEHICLE_FIELDS})
        self.data["vehicles"].append(entry)
        return entry

    def add_catalog_vehicle(self, vehicle: dict) -> dict:
        """Append a vehicle picked from catalog search."""
        self.ensure_editable()
        entry = {"car": len(self.data["vehicles"]) + 1}
        entry.update(self._catalog_fields(vehicle))
        self.data["vehicles"].append(entry)
        return entry

    def select_catalog_vehicle(self, index: int, vehicle: dict) -> dict:
        """Replace an entry's data with a catalog vehicle."""
        self.ensure_editable()
        entry = self._vehicle(index)
        entry.update(self._catalog_fields(vehicle))
        return entry

    @staticmethod
    def _catalog_fields(vehicle: dict) -> dict:
        return {
            "make": vehicle.get("make") or "",
            "model": vehicle.get("model") or "",
            "year": vehicle.get("year"),
            "lat_acc": vehicle.get("latacc", vehicle.get("lat_acc")),
            "vehicle_id": vehicle.get("id"),
            "is_new": False,
            "is_saved": True,
        }

    def update_vehicle(self, index: int, fields: dict, role: str | None) -> dict:
        """Edit an entry. ``year`` and ``lat_acc`` of catalog vehicles are
        locked unless ``role`` is the elevated role."""
        self.ensure_editable()
        entry = self._vehicle(index)
        if not isinstance(fields, dict):
            raise ValidationError("Vehicle fields must be an object",
                                  details={"fields": "Must be an object"})
        unknown = sorted(set(fields) - set(VEHICLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Unknown vehicle fields: {', '.join(unknown)}",
                details={key: "Unknown field" for key in unknown},
            )
        ensure_can_edit_fields(
            role, fields.keys(),
            is_new_entity=entry["is_new"] and not entry["is_saved"],
        )
        _apply_vehicle_fields(entry, fields)
        return entry

    def locked_fields(self, index: int, role: str | None) -> list[str]:
        entry = self._vehicle(index)
        if can_edit_sensitive_field(role, entry["is_new"] and not entry["is_saved"]):
            return []
        return sorted(SENSITIVE_VEHICLE_FIELDS)

    def mark_vehicle_saved(self, index: int, vehicle_id: int) -> dict:
        """A new vehicle saved to the catalog becomes an existing one."""
        entry = self._vehicle(index)
        entry["vehicle_id"] = vehicle_id
        entry["is_new"] = False
        entry["is_saved"] = True
        return entry

    def remove_vehicle(self, index: int):
        self.ensure_editable()
        self._vehicle(index)
        self.data["vehicles"].pop(index)
        self._renumber()

    # ── exercises ────────────────────────────────────────────────────────

    def set_core_exercise(self, name: str, chord=None, mo=None) -> dict:
        if name not in ("slalom", "lane_change"):
            raise ValidationError(f"Unknown exercise '{name}'", details={"exercise": name})
        params = {k: v for k, v in (("chord", chord), ("mo", mo)) if v is not None}
        self.update({"course_layout": {name: params}})
        return self.data["course_layout"]

    def update_final_exercise(self, patch: dict) -> dict:
        self.update({"course_layout": {"final_exercise": patch or {}}})
        return self.data["course_layout"]["final_exercise"]

    def add_additional_exercise(self, name, is_measured=False, measurement_type=None,
                                parameters=None) -> dict:
        self.ensure_editable()
        exercise = build_additional_exercise(name, is_measured, measurement_type, parameters)
        self.data["additional_exercises"].append(exercise)
        return exercise

    def remove_additional_exercise(self, exercise_id: str):
        self.ensure_editable()
        exercises = self.data["additional_exercises"]
        remaining = [e for e in exercises if e.get("id") != exercise_id]
        if len(remaining) == len(exercises):
            raise NotFoundError(resource="Additional exercise", resource_id=exercise_id)
        self.data["additional_exercises"] = remaining

    # ── review / submit ──────────────────────────────────────────────────

    def review_issues(self) -> dict:
        """Blocking problems keyed by field. The file is optional only
        while editing an existing closure."""
        issues = {}
        if not self.data.get("file") and not self.is_editing:
            issues["file"] = FILE_REQUIRED_MESSAGE
        return issues

    @property
    def can_submit(self) -> bool:
        return self.step == WizardStep.REVIEW and not self.review_issues()

    def ensure_submittable(self):
        if self.step != WizardStep.REVIEW:
            raise ValidationError(
                "Closure can only be submitted from the review step",
                details={"step": self.step.value},
            )
        issues = self.review_issues()
        if issues:
            raise ValidationError(next(iter(issues.values())), details=issues)

    def document(self, students: list[dict] | None = None) -> dict:
        return closure_document.to_document(self.data, students)

    def mark_submitted(self, closure_id: int):
        self._transition("submit")
        self.is_editing = False
        self.closure_id = closure_id

    def begin_edit(self):
        self._transition("edit")
        self.is_editing = True

    def load_existing(self, closure_id: int, document: dict, zipfile_url: str | None = None):
        """Populate from a stored closure and land on ``completed``."""
        loaded = closure_document.from_document(document)
        data = default_data(loaded["course_info"])
        data["vehicles"] = loaded["vehicles"]
        data["course_layout"] = _deep_merge(default_course_layout(), loaded["course_layout"])
        data["additional_exercises"] = loaded["additional_exercises"]
        data["notes"] = loaded["notes"]
        if zipfile_url:
            data["file"] = {
                "filename": os.path.basename(zipfile_url),
                "size": None,
                "url": zipfile_url,
            }
        self.data = data
        self.step = WizardStep.COMPLETED
        self.is_editing = False
        self.closure_id = closure_id
