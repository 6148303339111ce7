"""
Seat allocation tests.

Covers:
    - AllocationEditor invariants (total never exceeds capacity, merges, rejects)
    - the 20-seat scenario: 12 + 5 allocated, 3 remaining, a 4-seat add rejected
    - stateless add/remove endpoints and the save round trip
"""

from datetime import date

import pytest

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.course import CourseAllocation, CourseInstance, Program
from coursedesk.services import allocation_service, client_service
from coursedesk.services.allocation_service import AllocationEditor


# ═════════════════════════════════════════════════════════════════════════════
# Seed helpers
# ═════════════════════════════════════════════════════════════════════════════


def _course(max_students=20, open_enrollment=True, host_client_id=None, private_seats=None):
    program = Program(name="Advanced Car Control", max_students=max_students)
    db.session.add(program)
    db.session.flush()
    course = CourseInstance(
        program_id=program.id,
        start_date=date(2026, 5, 4),
        is_open_enrollment=open_enrollment,
        host_client_id=host_client_id,
        private_seats_allocated=private_seats,
    )
    db.session.add(course)
    db.session.commit()
    return course


def _client(name):
    return client_service.create_client({"name": name})


# ═════════════════════════════════════════════════════════════════════════════
# Editor
# ═════════════════════════════════════════════════════════════════════════════


class TestAllocationEditor:

    def test_twenty_seat_scenario(self):
        editor = AllocationEditor(20)
        editor.add(1, 12)
        editor.add(2, 5)
        assert editor.total_allocated == 17
        assert editor.remaining_seats == 3

        with pytest.raises(ValidationError) as exc:
            editor.add(3, 4)
        assert exc.value.details["seats_allocated"] == (
            "Cannot allocate more than the remaining 3 seats"
        )
        assert editor.total_allocated == 17
        assert len(editor.entries) == 2

    def test_exact_fill_is_allowed(self):
        editor = AllocationEditor(20)
        editor.add(1, 12)
        editor.add(2, 8)
        assert editor.remaining_seats == 0
        assert editor.totals()["allocation_percentage"] == 100

    def test_readding_client_merges_seats(self):
        editor = AllocationEditor(20)
        editor.add(1, 4)
        editor.add(1, 3)
        assert len(editor.entries) == 1
        assert editor.entries[0].seats_allocated == 7

    @pytest.mark.parametrize("seats", [0, -2, "abc", None, 2.5, True])
    def test_invalid_seat_counts_rejected(self, seats):
        editor = AllocationEditor(20)
        with pytest.raises(ValidationError) as exc:
            editor.add(1, seats)
        assert "seats_allocated" in exc.value.details
        assert editor.entries == []

    def test_missing_client_rejected(self):
        editor = AllocationEditor(20)
        with pytest.raises(ValidationError) as exc:
            editor.add(None, 2)
        assert exc.value.details["client_id"] == "Please select a client"

    def test_remove_frees_seats(self):
        editor = AllocationEditor(10)
        editor.add(1, 6)
        editor.add(2, 4)
        editor.remove(0)
        assert editor.remaining_seats == 6
        assert [e.client_id for e in editor.entries] == [2]

    def test_totals_with_zero_capacity(self):
        editor = AllocationEditor(0)
        assert editor.totals() == {
            "total_allocated": 0,
            "max_students": 0,
            "remaining_seats": 0,
            "allocation_percentage": 0,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Service + API
# ═════════════════════════════════════════════════════════════════════════════


def test_private_course_capacity_uses_private_seats():
    host = _client("Host Co")
    course = _course(max_students=20, open_enrollment=False,
                     host_client_id=host.id, private_seats=8)
    assert course.capacity == 8
    editor = allocation_service.load_allocations(course.id)
    assert editor.capacity == 8


def test_save_round_trip(client):
    course = _course()
    acme = _client("Acme")
    globex = _client("Globex")

    res = client.put(f"/api/v1/courses/{course.id}/allocations", json={
        "allocations": [
            {"client_id": acme.id, "seats_allocated": 12},
            {"client_id": globex.id, "seats_allocated": 5},
        ],
    })
    assert res.status_code == 200
    assert res.get_json()["remaining_seats"] == 3

    res = client.get(f"/api/v1/courses/{course.id}/allocations")
    data = res.get_json()
    assert {(a["client_name"], a["seats_allocated"]) for a in data["allocations"]} == {
        ("Acme", 12), ("Globex", 5),
    }
    assert data["total_allocated"] == 17
    assert data["max_students"] == 20

    # Saving again replaces the stored set
    res = client.put(f"/api/v1/courses/{course.id}/allocations", json={
        "allocations": [{"client_id": globex.id, "seats_allocated": 2}],
    })
    assert res.status_code == 200
    rows = CourseAllocation.query.filter_by(course_instance_id=course.id).all()
    assert [(r.client_id, r.seats_allocated) for r in rows] == [(globex.id, 2)]


def test_add_endpoint_rejects_over_capacity(client):
    course = _course()
    acme = _client("Acme")
    globex = _client("Globex")
    initech = _client("Initech")
    draft = [
        {"client_id": acme.id, "seats_allocated": 12},
        {"client_id": globex.id, "seats_allocated": 5},
    ]

    res = client.post(f"/api/v1/courses/{course.id}/allocations/add", json={
        "allocations": draft, "client_id": initech.id, "seats_allocated": 4,
    })
    assert res.status_code == 422
    assert res.get_json()["details"]["seats_allocated"] == (
        "Cannot allocate more than the remaining 3 seats"
    )

    res = client.post(f"/api/v1/courses/{course.id}/allocations/add", json={
        "allocations": draft, "client_id": initech.id, "seats_allocated": 3,
    })
    assert res.status_code == 200
    data = res.get_json()
    assert data["remaining_seats"] == 0
    assert len(data["allocations"]) == 3
    # Nothing is stored until the list is saved
    assert CourseAllocation.query.count() == 0


def test_remove_endpoint(client):
    course = _course()
    acme = _client("Acme")
    res = client.post(f"/api/v1/courses/{course.id}/allocations/remove", json={
        "allocations": [{"client_id": acme.id, "seats_allocated": 12}], "index": 0,
    })
    assert res.status_code == 200
    assert res.get_json()["allocations"] == []
    assert res.get_json()["remaining_seats"] == 20


def test_save_rejects_list_over_capacity(client):
    course = _course(max_students=10)
    acme = _client("Acme")
    globex = _client("Globex")
    res = client.put(f"/api/v1/courses/{course.id}/allocations", json={
        "allocations": [
            {"client_id": acme.id, "seats_allocated": 8},
            {"client_id": globex.id, "seats_allocated": 3},
        ],
    })
    assert res.status_code == 422
    assert CourseAllocation.query.count() == 0


def test_unknown_client_rejected(client):
    course = _course()
    res = client.post(f"/api/v1/courses/{course.id}/allocations/add", json={
        "allocations": [], "client_id": 999, "seats_allocated": 2,
    })
    assert res.status_code == 422
    assert "client_id" in res.get_json()["details"]


def test_unknown_course_is_404(client):
    res = client.get("/api/v1/courses/999/allocations")
    assert res.status_code == 404
