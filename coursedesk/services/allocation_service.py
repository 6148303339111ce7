"""
Seat Allocation Service — per-client seat reservations on a course instance.

Editing happens on an in-memory ``AllocationEditor`` seeded from the stored
rows. Add/Remove never touch the database; ``save_allocations`` replaces the
stored set (delete-all-then-insert) in one transaction.

Known limitation: two editors saving the same course concurrently both
replace the full set, so the last writer wins and silently discards the
other's changes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.client import Client
from coursedesk.models.course import CourseAllocation, CourseInstance
from coursedesk.utils.helpers import db_commit_or_raise, get_or_raise, parse_positive_int

logger = logging.getLogger(__name__)


@dataclass
class AllocationEntry:
    client_id: int
    seats_allocated: int
    client_name: str = ""
    id: int | None = None


class AllocationEditor:
    """In-memory allocation list for one course.

    Invariant: the sum of ``seats_allocated`` never exceeds ``capacity``.
    A rejected add leaves the list unchanged; seat counts are never clamped.
    """

    def __init__(self, capacity: int, entries: list[AllocationEntry] | None = None):
        self.capacity = int(capacity or 0)
        self.entries: list[AllocationEntry] = list(entries or [])

    @property
    def total_allocated(self) -> int:
        return sum(e.seats_allocated for e in self.entries)

    @property
    def remaining_seats(self) -> int:
        return self.capacity - self.total_allocated

    def add(self, client_id, seats_allocated, client_name: str = "") -> AllocationEntry:
        """Add seats for a client; re-adding a client merges the counts."""
        errors = {}
        if not client_id:
            errors["client_id"] = "Please select a client"
        seats = parse_positive_int(seats_allocated)
        if seats is None:
            errors["seats_allocated"] = "Seats must be a whole number greater than zero"
        elif seats > self.remaining_seats:
            errors["seats_allocated"] = (
                f"Cannot allocate more than the remaining {self.remaining_seats} seats"
            )
        if errors:
            raise ValidationError("Seat allocation rejected", details=errors)

        for entry in self.entries:
            if entry.client_id == client_id:
                entry.seats_allocated += seats
                return entry
        entry = AllocationEntry(client_id=client_id, seats_allocated=seats, client_name=client_name)
        self.entries.append(entry)
        return entry

    def remove(self, index: int) -> AllocationEntry:
        if index < 0 or index >= len(self.entries):
            raise ValidationError("Allocation row does not exist", details={"index": index})
        return self.entries.pop(index)

    def remove_client(self, client_id: int):
        self.entries = [e for e in self.entries if e.client_id != client_id]

    def totals(self) -> dict:
        total = self.total_allocated
        percentage = round(total / self.capacity * 100, 1) if self.capacity else 0
        return {
            "total_allocated": total,
            "max_students": self.capacity,
            "remaining_seats": self.remaining_seats,
            "allocation_percentage": percentage,
        }

    def to_dict(self) -> dict:
        return {"allocations": [asdict(e) for e in self.entries], **self.totals()}


# ── Editor construction ──────────────────────────────────────────────────────


def load_allocations(course_id: int) -> AllocationEditor:
    """Seed an editor with the stored rows of a course."""
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    rows = (
        CourseAllocation.query
        .filter_by(course_instance_id=course.id)
        .order_by(CourseAllocation.id)
        .all()
    )
    entries = [
        AllocationEntry(
            id=row.id,
            client_id=row.client_id,
            client_name=row.client.name if row.client else "",
            seats_allocated=row.seats_allocated,
        )
        for row in rows
    ]
    return AllocationEditor(course.capacity, entries)


def build_editor(course_id: int, entries: list[dict]) -> AllocationEditor:
    """Replay a posted entry list through the editor so every row passes
    the same checks as an interactive Add."""
    course = get_or_raise(CourseInstance, course_id, "CourseInstance")
    editor = AllocationEditor(course.capacity)
    if not isinstance(entries, list):
        raise ValidationError("allocations must be a list", details={"allocations": "Must be a list"})
    for i, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise ValidationError(f"Allocation row {i + 1} is invalid", details={"allocations": f"Row {i + 1} must be an object"})
        client = db.session.get(Client, raw.get("client_id")) if raw.get("client_id") else None
        if raw.get("client_id") and client is None:
            raise ValidationError("Unknown client", details={"client_id": f"Client {raw.get('client_id')} does not exist"})
        editor.add(client.id if client else raw.get("client_id"), raw.get("seats_allocated"),
                   client_name=client.name if client else "")
    return editor


def add_allocation(course_id: int, entries: list[dict], client_id, seats_allocated) -> AllocationEditor:
    """Stateless Add: rebuild the editor from ``entries`` and add one row."""
    editor = build_editor(course_id, entries)
    client = db.session.get(Client, client_id) if client_id else None
    if client_id and client is None:
        raise ValidationError("Unknown client", details={"client_id": f"Client {client_id} does not exist"})
    editor.add(client.id if client else client_id, seats_allocated,
               client_name=client.name if client else "")
    return editor


def remove_allocation(course_id: int, entries: list[dict], index) -> AllocationEditor:
    """Stateless Remove: rebuild the editor from ``entries`` and drop one row."""
    editor = build_editor(course_id, entries)
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValidationError("Allocation row does not exist", details={"index": index})
    editor.remove(index)
    return editor


# ── Persistence ──────────────────────────────────────────────────────────────


def save_allocations(course_id: int, entries: list[dict]) -> AllocationEditor:
    """Replace every allocation row of the course with ``entries``.

    Delete and insert share one transaction; see the module docstring for
    the concurrent-editor limitation.
    """
    editor = build_editor(course_id, entries)

    CourseAllocation.query.filter_by(course_instance_id=course_id).delete(synchronize_session="fetch")
    for entry in editor.entries:
        db.session.add(CourseAllocation(
            course_instance_id=course_id,
            client_id=entry.client_id,
            seats_allocated=entry.seats_allocated,
        ))
    db_commit_or_raise("CourseAllocation")

    logger.info(
        "Allocations saved: course=%s clients=%d seats=%d/%d",
        course_id, len(editor.entries), editor.total_allocated, editor.capacity,
        extra={"course_instance_id": course_id},
    )
    return load_allocations(course_id)
