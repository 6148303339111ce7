"""
Enrollment tests: per-client seat caps, unenroll/reactivation, listings.
"""

from datetime import date

import pytest

from coursedesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from coursedesk.models import db
from coursedesk.models.course import CourseAllocation, CourseInstance, Program
from coursedesk.models.student import SessionAttendee
from coursedesk.services import client_service, enrollment_service, student_service


# ═════════════════════════════════════════════════════════════════════════════
# Seed helpers
# ═════════════════════════════════════════════════════════════════════════════


def _course(*, open_enrollment, host=None, private_seats=None, max_students=10):
    program = Program(name="Teen Driver Safety", max_students=max_students)
    db.session.add(program)
    db.session.flush()
    course = CourseInstance(
        program_id=program.id,
        start_date=date(2026, 6, 1),
        is_open_enrollment=open_enrollment,
        host_client_id=host.id if host else None,
        private_seats_allocated=private_seats,
    )
    db.session.add(course)
    db.session.commit()
    return course


def _allocate(course, client, seats):
    db.session.add(CourseAllocation(course_instance_id=course.id, client_id=client.id,
                                    seats_allocated=seats))
    db.session.commit()


def _student(client, n, **extra):
    team = client_service.default_team(client.id)
    data = {"first_name": f"Stu{n}", "last_name": "Dent", "email": f"stu{n}.{client.id}@example.com"}
    data.update(extra)
    return student_service.create_student(team_id=team.id, data=data)


# ═════════════════════════════════════════════════════════════════════════════
# Seat caps
# ═════════════════════════════════════════════════════════════════════════════


def test_private_course_caps_at_private_seats():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=2)
    s1, s2, s3 = (_student(host, i) for i in range(3))

    enrollment_service.enroll(course.id, s1.id)
    enrollment_service.enroll(course.id, s2.id)
    with pytest.raises(ValidationError) as exc:
        enrollment_service.enroll(course.id, s3.id)
    assert "seats" in exc.value.details

    summary = enrollment_service.seat_summary(course.id, host.id)
    assert summary == {"client_id": host.id, "available_seats": 2, "enrolled": 2, "remaining": 0}


def test_open_course_uses_client_allocation():
    acme = client_service.create_client({"name": "Acme"})
    globex = client_service.create_client({"name": "Globex"})
    course = _course(open_enrollment=True)
    _allocate(course, acme, 1)

    enrollment_service.enroll(course.id, _student(acme, 1).id)
    with pytest.raises(ValidationError):
        enrollment_service.enroll(course.id, _student(acme, 2).id)
    # No allocation → no seats
    with pytest.raises(ValidationError):
        enrollment_service.enroll(course.id, _student(globex, 1).id)


def test_private_course_rejects_other_clients():
    host = client_service.create_client({"name": "Host Co"})
    other = client_service.create_client({"name": "Other Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    with pytest.raises(ValidationError) as exc:
        enrollment_service.enroll(course.id, _student(other, 1).id)
    assert "student_id" in exc.value.details


def test_double_enrollment_conflicts():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    student = _student(host, 1)
    enrollment_service.enroll(course.id, student.id)
    with pytest.raises(ConflictError):
        enrollment_service.enroll(course.id, student.id)


def test_inactive_student_cannot_enroll():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    student = _student(host, 1)
    student_service.update_student(student_id=student.id, data={"status": "inactive"})
    with pytest.raises(ValidationError):
        enrollment_service.enroll(course.id, student.id)


# ═════════════════════════════════════════════════════════════════════════════
# Unenroll / reactivate
# ═════════════════════════════════════════════════════════════════════════════


def test_unenroll_frees_seat_and_reenroll_reactivates():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=1)
    s1, s2 = _student(host, 1), _student(host, 2)

    first = enrollment_service.enroll(course.id, s1.id)
    enrollment_service.unenroll(course.id, s1.id)
    assert db.session.get(SessionAttendee, first.id).status == "cancelled"

    enrollment_service.enroll(course.id, s2.id)
    enrollment_service.unenroll(course.id, s2.id)

    again = enrollment_service.enroll(course.id, s1.id)
    assert again.id == first.id
    assert again.status == "pending"
    assert SessionAttendee.query.filter_by(student_id=s1.id).count() == 1


def test_unenroll_without_enrollment_is_not_found():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=1)
    with pytest.raises(NotFoundError):
        enrollment_service.unenroll(course.id, _student(host, 1).id)


# ═════════════════════════════════════════════════════════════════════════════
# Listing scope
# ═════════════════════════════════════════════════════════════════════════════


def _regional_student(client, n):
    group = client_service.create_group(client_id=client.id, data={"name": "Regional"})
    team = client_service.create_team(group_id=group.id, name="Regional Team")
    return student_service.create_student(team_id=team.id, data={
        "first_name": f"Reg{n}", "last_name": "Ional", "email": f"reg{n}.{client.id}@example.com",
    })


def test_open_course_lists_students_of_every_client():
    alpha = client_service.create_client({"name": "Alpha Co"})
    beta = client_service.create_client({"name": "Beta Co"})
    course = _course(open_enrollment=True)
    sa, sb = _student(alpha, 1), _student(beta, 1)
    regional = _regional_student(beta, 2)

    rows = enrollment_service.list_students_for_course(course.id)
    assert {r["id"] for r in rows} == {sa.id, sb.id, regional.id}

    rows = enrollment_service.list_students_for_course(course.id, client_id=alpha.id)
    assert [r["id"] for r in rows] == [sa.id]


def test_private_course_lists_only_host_default_group():
    host = client_service.create_client({"name": "Host Co"})
    other = client_service.create_client({"name": "Other Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    listed = _student(host, 1)
    regional = _regional_student(host, 2)
    _student(other, 1)

    rows = enrollment_service.list_students_for_course(course.id)
    assert [r["id"] for r in rows] == [listed.id]
    assert regional.id not in {r["id"] for r in rows}


def test_private_course_rejects_host_student_outside_default_group():
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    regional = _regional_student(host, 1)

    with pytest.raises(ValidationError) as exc:
        enrollment_service.enroll(course.id, regional.id)
    assert "student_id" in exc.value.details
    assert enrollment_service.enrolled_count(course.id) == 0


def test_open_course_accepts_student_outside_default_group():
    alpha = client_service.create_client({"name": "Alpha Co"})
    course = _course(open_enrollment=True)
    _allocate(course, alpha, 2)
    regional = _regional_student(alpha, 1)

    attendee = enrollment_service.enroll(course.id, regional.id)
    assert attendee.status == "pending"


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


def test_course_student_list_flags_enrolled(client):
    host = client_service.create_client({"name": "Host Co"})
    other = client_service.create_client({"name": "Other Co"})
    course = _course(open_enrollment=False, host=host, private_seats=5)
    s1, s2 = _student(host, 1), _student(host, 2)
    _student(other, 1)
    enrollment_service.enroll(course.id, s1.id)

    res = client.get(f"/api/v1/courses/{course.id}/students")
    assert res.status_code == 200
    rows = {r["id"]: r["enrolled"] for r in res.get_json()}
    assert rows == {s1.id: True, s2.id: False}


def test_add_and_enroll_endpoint(client):
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=1)

    res = client.post(f"/api/v1/courses/{course.id}/students", json={
        "client_id": host.id, "first_name": "Nia", "last_name": "Park",
        "email": "Nia.Park@Example.com",
    })
    assert res.status_code == 201
    assert res.get_json()["student"]["email"] == "nia.park@example.com"

    res = client.post(f"/api/v1/courses/{course.id}/students", json={
        "client_id": host.id, "first_name": "Ola", "last_name": "Berg",
        "email": "ola@example.com",
    })
    assert res.status_code == 422
    assert "seats" in res.get_json()["details"]


def test_enroll_and_unenroll_endpoints(client):
    host = client_service.create_client({"name": "Host Co"})
    course = _course(open_enrollment=False, host=host, private_seats=3)
    student = _student(host, 1)

    res = client.post(f"/api/v1/courses/{course.id}/enrollments", json={"student_id": student.id})
    assert res.status_code == 201
    res = client.post(f"/api/v1/courses/{course.id}/enrollments", json={"student_id": student.id})
    assert res.status_code == 409

    res = client.get(f"/api/v1/courses/{course.id}/enrollments")
    assert [e["student_id"] for e in res.get_json()] == [student.id]

    res = client.delete(f"/api/v1/courses/{course.id}/enrollments/{student.id}")
    assert res.status_code == 200
    assert res.get_json()["status"] == "cancelled"

    res = client.get(f"/api/v1/courses/{course.id}/seats?client_id={host.id}")
    assert res.get_json()["remaining"] == 3
