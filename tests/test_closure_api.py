"""
Course closure API tests: wizard persistence, archive upload, submit/edit.

The wizard state lives in ``closure_wizard_sessions``; submit writes the
``course_closures`` record and replaces ``course_vehicles``.
"""

import io
import json
from datetime import date

import pytest
from werkzeug.datastructures import FileStorage

from coursedesk.models import db
from coursedesk.models.closure import ClosureWizardSession, CourseClosure
from coursedesk.models.course import CourseInstance, Program
from coursedesk.models.vehicle import CourseVehicle, Vehicle
from coursedesk.services import (
    client_service,
    closure_service,
    enrollment_service,
    student_service,
    vehicle_service,
)
from coursedesk.services.closure_wizard import FILE_REQUIRED_MESSAGE


# ═════════════════════════════════════════════════════════════════════════════
# Seed helpers
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def course():
    host = client_service.create_client({"name": "Northwind Fleet"})
    program = Program(name="Advanced Car Control", max_students=12)
    db.session.add(program)
    db.session.flush()
    instance = CourseInstance(
        program_id=program.id,
        start_date=date(2026, 9, 14),
        is_open_enrollment=False,
        host_client_id=host.id,
        private_seats_allocated=5,
    )
    db.session.add(instance)
    db.session.commit()

    team = client_service.default_team(host.id)
    student = student_service.create_student(team_id=team.id, data={
        "first_name": "Ann", "last_name": "Lee", "email": "ann.lee@example.com",
    })
    enrollment_service.enroll(instance.id, student.id)
    return instance


def _url(course_id, suffix=""):
    return f"/api/v1/courses/{course_id}/closure{suffix}"


def _upload(client, course_id, name="data.zip", payload=b"PK\x03\x04course-data"):
    return client.post(
        _url(course_id, "/wizard/file"),
        data={"file": (io.BytesIO(payload), name)},
        content_type="multipart/form-data",
    )


def _go_to_review(client, course_id):
    for _ in range(3):
        res = client.post(_url(course_id, "/wizard/navigate"), json={"action": "next"})
        assert res.status_code == 200
    assert res.get_json()["step"] == "review"


# ═════════════════════════════════════════════════════════════════════════════
# Wizard state
# ═════════════════════════════════════════════════════════════════════════════


class TestWizardState:

    def test_open_prefills_course_info(self, client, course):
        res = client.get(_url(course.id, "/wizard"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["step"] == "basic"
        assert body["progress"] == 25
        assert body["course_instance_id"] == course.id
        info = body["data"]["course_info"]
        assert info["program"] == "Advanced Car Control"
        assert info["date"] == "2026-09-14"
        assert info["client"] == "Northwind Fleet"
        assert ClosureWizardSession.query.filter_by(course_instance_id=course.id).count() == 1

    def test_state_persists_between_requests(self, client, course):
        client.patch(_url(course.id, "/wizard"), json={"notes": "Track was wet"})
        client.post(_url(course.id, "/wizard/navigate"), json={"action": "next"})
        body = client.get(_url(course.id, "/wizard")).get_json()
        assert body["step"] == "vehicles"
        assert body["data"]["notes"] == "Track was wet"

    def test_reset_discards_progress(self, client, course):
        client.post(_url(course.id, "/wizard/navigate"), json={"action": "next"})
        res = client.delete(_url(course.id, "/wizard"))
        assert res.status_code == 200
        assert res.get_json()["step"] == "basic"

    def test_invalid_navigation(self, client, course):
        res = client.post(_url(course.id, "/wizard/navigate"), json={"action": "back"})
        assert res.status_code == 422
        res = client.post(_url(course.id, "/wizard/navigate"), json={"action": "sideways"})
        assert res.status_code == 422
        assert "action" in res.get_json()["details"]

    def test_jump(self, client, course):
        res = client.post(_url(course.id, "/wizard/navigate"),
                          json={"action": "jump", "step": "exercises"})
        assert res.get_json()["step"] == "exercises"

    def test_invalid_patch_keeps_stored_state(self, client, course):
        res = client.patch(_url(course.id, "/wizard"), json={"course_info": {"units": "knots"}})
        assert res.status_code == 422
        body = client.get(_url(course.id, "/wizard")).get_json()
        assert body["data"]["course_info"]["units"] == "MPH"

    def test_unknown_course(self, client):
        assert client.get(_url(9999, "/wizard")).status_code == 404

    @pytest.mark.parametrize("suffix, method, payload, field", [
        ("/wizard", "patch", {"course_layout": {"slalom": 5}}, "course_layout.slalom"),
        ("/wizard", "patch", {"course_info": "x"}, "course_info"),
        ("/wizard/final-exercise", "put", {"slalom": 3}, "course_layout.final_exercise.slalom"),
        ("/wizard/final-exercise", "put", {"ideal_time_sec": "nan"},
         "course_layout.final_exercise.ideal_time_sec"),
    ])
    def test_wrong_shaped_fields_are_reported(self, client, course, suffix, method, payload, field):
        res = getattr(client, method)(_url(course.id, suffix), json=payload)
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert field in body["details"]
        stored = client.get(_url(course.id, "/wizard")).get_json()["data"]["course_layout"]
        assert stored["slalom"] == {"chord": 100, "mo": 15}
        assert stored["final_exercise"]["ideal_time_sec"] == 70

    @pytest.mark.parametrize("suffix, method", [
        ("/wizard", "patch"),
        ("/wizard/vehicles/0", "put"),
        ("/wizard/navigate", "post"),
        ("/wizard/additional-exercises", "post"),
    ])
    def test_non_object_body_is_malformed(self, client, course, suffix, method):
        client.post(_url(course.id, "/wizard/vehicles"), json={"make": "Mazda"})
        res = getattr(client, method)(_url(course.id, suffix), json=["year"])
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_MALFORMED"
        assert "body" in body["details"]


# ═════════════════════════════════════════════════════════════════════════════
# Course data file
# ═════════════════════════════════════════════════════════════════════════════


class TestArchiveUpload:

    def test_upload_zip(self, client, course, upload_dir):
        res = _upload(client, course.id)
        assert res.status_code == 200
        file_info = res.get_json()["data"]["file"]
        assert file_info["filename"] == "data.zip"
        assert file_info["size"] == len(b"PK\x03\x04course-data")
        assert file_info["url"].startswith(f"/uploads/closures/{course.id}/")
        assert list((upload_dir / "closures" / str(course.id)).iterdir())

    def test_non_zip_rejected(self, client, course, upload_dir):
        res = _upload(client, course.id, name="data.csv")
        assert res.status_code == 422
        assert res.get_json()["details"]["file"] == "Please upload a ZIP file"

    def test_missing_file(self, client, course):
        res = client.post(_url(course.id, "/wizard/file"), data={},
                          content_type="multipart/form-data")
        assert res.status_code == 422

    def test_remove_file(self, client, course, upload_dir):
        _upload(client, course.id)
        res = client.delete(_url(course.id, "/wizard/file"))
        assert res.get_json()["data"]["file"] is None
        assert not list((upload_dir / "closures" / str(course.id)).iterdir())

    def test_replacing_archive_deletes_previous(self, client, course, upload_dir):
        first = _upload(client, course.id).get_json()["data"]["file"]["url"]
        second = _upload(client, course.id, name="day2.zip").get_json()["data"]["file"]["url"]
        assert first != second
        names = [p.name for p in (upload_dir / "closures" / str(course.id)).iterdir()]
        assert len(names) == 1
        assert second.endswith(names[0])

    def test_reset_deletes_unsubmitted_archive(self, client, course, upload_dir):
        _upload(client, course.id)
        client.delete(_url(course.id, "/wizard"))
        assert not list((upload_dir / "closures" / str(course.id)).iterdir())

    def test_failed_commit_removes_new_archive(self, course, upload_dir, monkeypatch):
        def _unavailable(resource="record"):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(closure_service, "db_commit_or_raise", _unavailable)
        archive = FileStorage(stream=io.BytesIO(b"PK\x03\x04course-data"), filename="data.zip")
        with pytest.raises(RuntimeError):
            closure_service.upload_closure_file(course.id, archive)
        db.session.rollback()
        assert not list((upload_dir / "closures" / str(course.id)).iterdir())

    def test_archive_of_stored_closure_survives_edit(self, client, course, upload_dir,
                                                     make_user, auth_headers):
        headers = auth_headers(make_user())
        directory = upload_dir / "closures" / str(course.id)
        _upload(client, course.id)
        _go_to_review(client, course.id)
        client.post(_url(course.id, "/wizard/submit"), headers=headers)

        client.post(_url(course.id, "/wizard/edit"))
        client.delete(_url(course.id, "/wizard/file"))
        assert len(list(directory.iterdir())) == 1

        replacement = _upload(client, course.id, name="fixed.zip").get_json()["data"]["file"]["url"]
        assert len(list(directory.iterdir())) == 2
        res = client.post(_url(course.id, "/wizard/submit"), headers=headers)
        assert res.get_json()["closure"]["zipfile_url"] == replacement
        names = [p.name for p in directory.iterdir()]
        assert len(names) == 1
        assert replacement.endswith(names[0])


# ═════════════════════════════════════════════════════════════════════════════
# Vehicles & exercises
# ═════════════════════════════════════════════════════════════════════════════


class TestWizardVehicles:

    def test_catalog_vehicle_locked_for_admin(self, client, course, make_user, auth_headers):
        catalog = vehicle_service.create_vehicle(
            {"make": "Honda", "model": "Civic", "year": 2019, "latacc": 0.85})
        res = client.post(_url(course.id, "/wizard/vehicles"), json={"vehicle_id": catalog.id})
        assert res.status_code == 201
        entry = res.get_json()["data"]["vehicles"][0]
        assert entry["vehicle_id"] == catalog.id
        assert entry["lat_acc"] == 0.85

        admin = make_user("admin@example.com", role="admin")
        res = client.put(_url(course.id, "/wizard/vehicles/0"), json={"year": 2020},
                         headers=auth_headers(admin))
        assert res.status_code == 403

        boss = make_user("root@example.com", role="superadmin")
        res = client.put(_url(course.id, "/wizard/vehicles/0"), json={"year": 2020},
                         headers=auth_headers(boss))
        assert res.status_code == 200
        assert res.get_json()["data"]["vehicles"][0]["year"] == 2020

    def test_save_new_vehicle_to_catalog(self, client, course):
        client.post(_url(course.id, "/wizard/vehicles"), json={"make": "Mazda", "model": "MX-5"})
        res = client.post(_url(course.id, "/wizard/vehicles/0/save"))
        assert res.status_code == 200
        entry = res.get_json()["data"]["vehicles"][0]
        assert entry["vehicle_id"] is not None
        assert entry["can_edit_sensitive"] is False
        assert db.session.get(Vehicle, entry["vehicle_id"]).make == "Mazda"

    def test_select_replaces_entry(self, client, course):
        catalog = vehicle_service.create_vehicle({"make": "Toyota", "model": "GR86"})
        client.post(_url(course.id, "/wizard/vehicles"), json={"make": "Typo"})
        res = client.post(_url(course.id, "/wizard/vehicles/0/select"),
                          json={"vehicle_id": catalog.id})
        assert res.get_json()["data"]["vehicles"][0]["make"] == "Toyota"

    def test_remove_vehicle_renumbers(self, client, course):
        for make in ("A", "B"):
            client.post(_url(course.id, "/wizard/vehicles"), json={"make": make})
        res = client.delete(_url(course.id, "/wizard/vehicles/0"))
        vehicles = res.get_json()["data"]["vehicles"]
        assert [(v["car"], v["make"]) for v in vehicles] == [(1, "B")]

    def test_missing_vehicle_entry(self, client, course):
        res = client.put(_url(course.id, "/wizard/vehicles/4"), json={"make": "X"})
        assert res.status_code == 404

    def test_exercises(self, client, course):
        res = client.put(_url(course.id, "/wizard/exercises/slalom"), json={"chord": 90, "mo": 12})
        layout = res.get_json()["data"]["course_layout"]
        assert layout["final_exercise"]["slalom"] == {"chord": 90, "mo": 12}

        res = client.put(_url(course.id, "/wizard/final-exercise"), json={"ideal_time_sec": 65})
        assert res.get_json()["data"]["course_layout"]["final_exercise"]["ideal_time_sec"] == 65

        res = client.post(_url(course.id, "/wizard/additional-exercises"), json={
            "name": "Braking", "is_measured": True, "measurement_type": "latacc",
            "parameters": {"chord": 50, "mo": 5},
        })
        assert res.status_code == 201
        exercise_id = res.get_json()["data"]["additional_exercises"][0]["id"]

        res = client.delete(_url(course.id, f"/wizard/additional-exercises/{exercise_id}"))
        assert res.get_json()["data"]["additional_exercises"] == []


# ═════════════════════════════════════════════════════════════════════════════
# Review, submit, edit
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmit:

    def test_review_lists_enrolled_students(self, client, course):
        body = client.get(_url(course.id, "/wizard/review")).get_json()
        assert [s["name"] for s in body["students"]] == ["Ann Lee"]
        assert body["issues"] == {"file": FILE_REQUIRED_MESSAGE}

    def test_submit_without_file(self, client, course, make_user, auth_headers):
        _go_to_review(client, course.id)
        res = client.post(_url(course.id, "/wizard/submit"), headers=auth_headers(make_user()))
        assert res.status_code == 422
        assert res.get_json()["error"] == FILE_REQUIRED_MESSAGE
        assert CourseClosure.query.count() == 0

    def test_submit_requires_signed_in_user(self, client, course, upload_dir):
        _upload(client, course.id)
        _go_to_review(client, course.id)
        res = client.post(_url(course.id, "/wizard/submit"))
        assert res.status_code == 401
        assert CourseClosure.query.count() == 0

    def test_submit_edit_resubmit(self, client, course, upload_dir, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        catalog = vehicle_service.create_vehicle(
            {"make": "Honda", "model": "Civic", "year": 2019, "latacc": 0.85})

        _upload(client, course.id)
        client.post(_url(course.id, "/wizard/vehicles"), json={"vehicle_id": catalog.id})
        client.post(_url(course.id, "/wizard/vehicles"), json={"make": "Mazda", "model": "MX-5"})
        client.post(_url(course.id, "/wizard/vehicles"), json={})
        _go_to_review(client, course.id)

        res = client.post(_url(course.id, "/wizard/submit"), headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["step"] == "completed"
        assert body["analytics_url"] == f"/events/{course.id}/analytics"
        closure = body["closure"]
        assert closure["status"] == "draft"
        assert closure["closed_by"] == user.id
        assert closure["zipfile_url"].startswith("/uploads/closures/")
        assert closure["closure_data"]["students"][0]["name"] == "Ann Lee"

        # The unsaved Mazda was registered; the blank entry was not
        assert Vehicle.query.filter_by(make="Mazda").count() == 1
        rows = CourseVehicle.query.filter_by(course_instance_id=course.id) \
            .order_by(CourseVehicle.car_number).all()
        assert [r.car_number for r in rows] == [1, 2]
        assert rows[0].vehicle_id == catalog.id

        # Completed wizard refuses edits until an edit is started
        res = client.patch(_url(course.id, "/wizard"), json={"notes": "late"})
        assert res.status_code == 422

        res = client.post(_url(course.id, "/wizard/edit"))
        assert res.status_code == 200
        assert res.get_json()["step"] == "review"
        assert res.get_json()["is_editing"] is True

        client.delete(_url(course.id, "/wizard/file"))
        client.patch(_url(course.id, "/wizard"), json={"notes": "Corrected cone count"})
        client.delete(_url(course.id, "/wizard/vehicles/1"))
        res = client.post(_url(course.id, "/wizard/submit"), headers=headers)
        assert res.status_code == 200
        assert res.get_json()["closure"]["id"] == closure["id"]

        assert CourseClosure.query.count() == 1
        stored = db.session.get(CourseClosure, closure["id"])
        assert stored.document["notes"] == "Corrected cone count"
        assert stored.zipfile_url == closure["zipfile_url"]
        assert CourseVehicle.query.filter_by(course_instance_id=course.id).count() == 1

    def test_get_and_download(self, client, course, upload_dir, make_user, auth_headers):
        assert client.get(_url(course.id)).status_code == 404

        _upload(client, course.id)
        _go_to_review(client, course.id)
        client.post(_url(course.id, "/wizard/submit"), headers=auth_headers(make_user()))

        res = client.get(_url(course.id))
        assert res.status_code == 200
        assert res.get_json()["analytics_url"] == f"/events/{course.id}/analytics"

        res = client.get(_url(course.id, "/download"))
        assert res.status_code == 200
        assert res.mimetype == "application/json"
        assert f"course_{course.id}_closure.json" in res.headers["Content-Disposition"]
        document = json.loads(res.data)
        assert document["course_info"]["client"] == "Northwind Fleet"

    def test_reopening_after_submit_loads_closure(self, client, course, upload_dir,
                                                  make_user, auth_headers):
        _upload(client, course.id)
        _go_to_review(client, course.id)
        client.post(_url(course.id, "/wizard/submit"), headers=auth_headers(make_user()))

        res = client.delete(_url(course.id, "/wizard"))
        body = res.get_json()
        assert body["step"] == "completed"
        assert body["closure_id"] is not None
