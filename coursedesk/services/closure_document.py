"""
Closure document (de)serialization.

The wizard keeps one canonical snake_case representation. This module is
the only place that maps it to and from the stored ``closure_data`` JSON.
Documents written by older clients used camelCase for some keys
(``latAcc``, ``isMeasured``, ``additionalExercises`` ...); those spellings
are accepted on read and never written.

Stored shape:
    {
      "course_info": {"units", "country", "program", "date", "client"},
      "vehicles": [{"car", "make", "model", "year", "lat_acc", "vehicle_id"}],
      "course_layout": {
          "slalom": {"chord", "mo"},
          "lane_change": {"chord", "mo"},
          "final_exercise": {"ideal_time_sec", "cone_penalty_sec",
                             "door_penalty_sec", "slalom", "lane_change",
                             "reverse_time"}
      },
      "additional_exercises": [{"id", "name", "is_measured",
                                "measurement_type", "parameters"}],
      "notes": "...",
      "students": [{"id", "name"}]
    }
"""

from __future__ import annotations

import copy

_LEGACY_KEYS = {
    "latAcc": "lat_acc",
    "latacc": "lat_acc",
    "isMeasured": "is_measured",
    "measurementType": "measurement_type",
    "additionalExercises": "additional_exercises",
    "courseInfo": "course_info",
    "courseLayout": "course_layout",
    "idealTime": "ideal_time",
    "penaltyType": "penalty_type",
    "penaltyValue": "penalty_value",
    "vehicleId": "vehicle_id",
}


def _canonical_keys(value: dict) -> dict:
    """Rename legacy keys one level deep; canonical keys win on collision."""
    result = {k: v for k, v in value.items() if k not in _LEGACY_KEYS}
    for key, val in value.items():
        target = _LEGACY_KEYS.get(key)
        if target and target not in result:
            result[target] = val
    return result


# ── write ────────────────────────────────────────────────────────────────────


def _vehicle_to_document(vehicle: dict) -> dict:
    return {
        "car": vehicle.get("car"),
        "make": vehicle.get("make") or "",
        "model": vehicle.get("model") or "",
        "year": vehicle.get("year"),
        "lat_acc": vehicle.get("lat_acc"),
        "vehicle_id": vehicle.get("vehicle_id"),
    }


def _exercise_to_document(exercise: dict) -> dict:
    return {
        "id": exercise.get("id"),
        "name": exercise.get("name"),
        "is_measured": bool(exercise.get("is_measured")),
        "measurement_type": exercise.get("measurement_type"),
        "parameters": dict(exercise.get("parameters") or {}),
    }


def to_document(data: dict, students: list[dict] | None = None) -> dict:
    """Build the stored closure document from wizard data."""
    doc = {
        "course_info": dict(data.get("course_info") or {}),
        "vehicles": [_vehicle_to_document(v) for v in data.get("vehicles") or []],
        "course_layout": copy.deepcopy(data.get("course_layout") or {}),
        "additional_exercises": [
            _exercise_to_document(e) for e in data.get("additional_exercises") or []
        ],
    }
    if data.get("notes"):
        doc["notes"] = data["notes"]
    if students:
        doc["students"] = [{"id": s["id"], "name": s["name"]} for s in students]
    return doc


# ── read ─────────────────────────────────────────────────────────────────────


def _vehicle_from_document(raw: dict, index: int) -> dict:
    raw = _canonical_keys(raw)
    vehicle_id = raw.get("vehicle_id")
    return {
        "car": raw.get("car") or index + 1,
        "make": raw.get("make") or "",
        "model": raw.get("model") or "",
        "year": raw.get("year"),
        "lat_acc": raw.get("lat_acc"),
        "vehicle_id": vehicle_id,
        # Vehicles coming back from a stored closure are treated as existing
        "is_new": False,
        "is_saved": vehicle_id is not None,
    }


def _exercise_from_document(raw: dict) -> dict:
    raw = _canonical_keys(raw)
    params = _canonical_keys(raw.get("parameters") or {})
    return {
        "id": raw.get("id"),
        "name": raw.get("name") or "",
        "is_measured": bool(raw.get("is_measured")),
        "measurement_type": raw.get("measurement_type"),
        "parameters": params,
    }


def from_document(doc: dict) -> dict:
    """Read a stored closure document into canonical wizard data.

    Returns a dict with ``course_info``, ``vehicles``, ``course_layout``,
    ``additional_exercises``, ``notes`` and ``students``.
    """
    doc = _canonical_keys(doc or {})
    layout = copy.deepcopy(doc.get("course_layout") or {})
    exercises = doc.get("additional_exercises") or []
    return {
        "course_info": dict(doc.get("course_info") or {}),
        "vehicles": [
            _vehicle_from_document(v, i) for i, v in enumerate(doc.get("vehicles") or [])
        ],
        "course_layout": layout,
        "additional_exercises": [_exercise_from_document(e) for e in exercises],
        "notes": doc.get("notes") or "",
        "students": list(doc.get("students") or []),
    }
