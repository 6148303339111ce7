"""
CSV student import tests: Template, parsing, capacity gate, partial success.
"""

import io
from datetime import date

import pytest

from coursedesk.core.exceptions import ValidationError
from coursedesk.models import db
from coursedesk.models.course import CourseInstance, Program
from coursedesk.models.student import SessionAttendee, Student
from coursedesk.services import client_service, student_import_service

HEADER = "First Name,Last Name,Email,Phone,Employee Number\n"


def _setup(private_seats=3):
    host = client_service.create_client({"name": "Host Co"})
    program = Program(name="Defensive Driving", max_students=12)
    db.session.add(program)
    db.session.flush()
    course = CourseInstance(program_id=program.id, start_date=date(2026, 7, 1),
                            is_open_enrollment=False, host_client_id=host.id,
                            private_seats_allocated=private_seats)
    db.session.add(course)
    db.session.commit()
    return host, course


def _upload(client, course, host, csv_text):
    return client.post(
        f"/api/v1/courses/{course.id}/students/import",
        data={"file": (io.BytesIO(csv_text.encode("utf-8")), "students.csv"),
              "client_id": str(host.id)},
        content_type="multipart/form-data",
    )


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════


class TestParseCsv:

    def test_template_is_header_only(self):
        assert student_import_service.generate_csv_template() == HEADER

    def test_parses_rows_with_row_numbers(self):
        rows = student_import_service.parse_csv(
            HEADER + "Ana,Lee,ana@example.com,555-1234,E1\n\nBo,Kim,bo@example.com\n"
        )
        assert [r["row_num"] for r in rows] == [2, 4]
        assert rows[0]["employee_number"] == "E1"
        assert rows[1]["phone"] == ""

    def test_quoted_fields_accepted(self):
        rows = student_import_service.parse_csv(
            HEADER + '"Ana, Jr.",Lee,ana@example.com,,\n'
        )
        assert rows[0]["first_name"] == "Ana, Jr."

    def test_bom_is_stripped(self):
        rows = student_import_service.parse_csv(("\ufeff" + HEADER + "A,B,a@example.com\n").encode("utf-8"))
        assert rows[0]["email"] == "a@example.com"

    def test_wrong_header_rejected(self):
        with pytest.raises(ValidationError):
            student_import_service.parse_csv("Name,Email\nAna,ana@example.com\n")


# ═════════════════════════════════════════════════════════════════════════════
# Import API
# ═════════════════════════════════════════════════════════════════════════════


def test_template_download(client):
    host, course = _setup()
    res = client.get(f"/api/v1/courses/{course.id}/students/import/template")
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    assert "student_import_template.csv" in res.headers["Content-Disposition"]
    assert res.get_data(as_text=True) == HEADER


def test_import_all_rows(client):
    host, course = _setup()
    res = _upload(client, course, host, HEADER + "Ana,Lee,Ana@Example.com,,\nBo,Kim,bo@example.com,,\n")
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "completed"
    assert data["success_count"] == 2
    assert data["error_count"] == 0

    students = Student.query.order_by(Student.email).all()
    assert [s.email for s in students] == ["ana@example.com", "bo@example.com"]
    assert all(s.team_id == client_service.default_team(host.id).id for s in students)
    assert SessionAttendee.query.count() == 2


def test_import_partial_success(client):
    host, course = _setup()
    csv_text = HEADER + "Ana,Lee,ana@example.com,,\n,Kim,bo@example.com,,\nCy,Ng,not-an-email,,\n"
    res = _upload(client, course, host, csv_text)
    assert res.status_code == 207
    data = res.get_json()
    assert data["status"] == "partial"
    assert data["success_count"] == 1
    assert data["error_count"] == 2
    assert [e["row_num"] for e in data["errors"]] == [3, 4]
    assert Student.query.count() == 1


def test_import_reuses_existing_student_and_reports_duplicates(client):
    host, course = _setup()
    assert _upload(client, course, host, HEADER + "Ana,Lee,ana@example.com,,\n").status_code == 200

    res = _upload(client, course, host, HEADER + "Ana,Lee,ana@example.com,,\n")
    assert res.status_code == 207
    assert "already enrolled" in res.get_json()["errors"][0]["error"]
    assert Student.query.count() == 1


def test_import_rejects_file_larger_than_remaining_seats(client):
    host, course = _setup(private_seats=2)
    csv_text = HEADER + "".join(f"S{i},T,s{i}@example.com,,\n" for i in range(3))
    res = _upload(client, course, host, csv_text)
    assert res.status_code == 422
    assert res.get_json()["error"] == "Cannot import 3 students. Only 2 seats available."
    assert Student.query.count() == 0


def test_import_requires_client_and_file(client):
    host, course = _setup()
    res = client.post(f"/api/v1/courses/{course.id}/students/import", json={})
    assert res.status_code == 400
    res = client.post(f"/api/v1/courses/{course.id}/students/import", json={"client_id": host.id})
    assert res.status_code == 400


def test_import_accepts_json_csv_content(client):
    host, course = _setup()
    res = client.post(f"/api/v1/courses/{course.id}/students/import", json={
        "client_id": host.id, "csv_content": HEADER + "Ana,Lee,ana@example.com\n",
    })
    assert res.status_code == 200
    assert res.get_json()["success_count"] == 1
