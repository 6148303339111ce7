#!/usr/bin/env python3
"""
Driver Training Admin Console — Demo Seed.

Creates a small working dataset:
  - two admin accounts (admin + superadmin)
  - three clients, each with its default group/team and a few students
  - a program, a venue, one open-enrollment and one private course
  - seat allocations on the open course and a handful of enrollments
  - a small vehicle catalog for the closure wizard

Usage:
    python scripts/seed_demo.py               # reset DB + seed
    python scripts/seed_demo.py --no-reset    # seed on top of existing data
"""

import argparse
import sys
from datetime import date

sys.path.insert(0, ".")

from coursedesk import create_app
from coursedesk.models import db
from coursedesk.models.account import User
from coursedesk.services import (
    allocation_service,
    client_service,
    course_service,
    enrollment_service,
    student_service,
    vehicle_service,
)


# ═══════════════════════════════════════════════════════════════════════════
# 1. ACCOUNTS
# ═══════════════════════════════════════════════════════════════════════════

def seed_accounts():
    users = [
        User(email="admin@coursedesk.example.com", role="admin",
             first_name="Avery", last_name="Admin"),
        User(email="root@coursedesk.example.com", role="superadmin",
             first_name="Sam", last_name="Super"),
    ]
    db.session.add_all(users)
    db.session.commit()
    return users


# ═══════════════════════════════════════════════════════════════════════════
# 2. CLIENTS & STUDENTS
# ═══════════════════════════════════════════════════════════════════════════

CLIENTS = [
    ("Northwind Fleet", "fleet@northwind.example.com", ["Ann Lee", "Raj Patel", "Mia Costa"]),
    ("Contoso Logistics", "ops@contoso.example.com", ["Tom Berg", "Eve Novak"]),
    ("Fabrikam Utilities", None, ["Joe Kim", "Liu Wei", "Ola Nordmann", "Ivy Chen"]),
]


def seed_clients():
    clients = []
    students = {}
    for name, contact, roster in CLIENTS:
        client = client_service.create_client({"name": name, "contact_email": contact})
        team = client_service.default_team(client.id)
        students[client.id] = []
        for full_name in roster:
            first, last = full_name.split(" ", 1)
            email = f"{first}.{last}@{name.split()[0]}.example.com".lower()
            students[client.id].append(student_service.create_student(
                team_id=team.id,
                data={"first_name": first, "last_name": last, "email": email},
            ))
        clients.append(client)
    return clients, students


# ═══════════════════════════════════════════════════════════════════════════
# 3. COURSES, ALLOCATIONS, ENROLLMENTS
# ═══════════════════════════════════════════════════════════════════════════

def seed_courses(clients, students):
    program = course_service.create_program({
        "name": "Advanced Car Control", "max_students": 20, "duration_days": 1,
    })
    venue = course_service.create_venue({
        "name": "Willow Springs Raceway", "short_name": "WSR", "country": "USA",
    })

    open_course = course_service.create_course_instance({
        "program_id": program.id, "venue_id": venue.id,
        "start_date": date(2026, 11, 9).isoformat(), "is_open_enrollment": True,
    })
    allocation_service.save_allocations(open_course.id, [
        {"client_id": clients[0].id, "seats_allocated": 12},
        {"client_id": clients[1].id, "seats_allocated": 5},
    ])

    private_course = course_service.create_course_instance({
        "program_id": program.id, "venue_id": venue.id,
        "start_date": date(2026, 12, 7).isoformat(), "is_open_enrollment": False,
        "host_client_id": clients[2].id, "private_seats_allocated": 6,
    })

    enrolled = 0
    for client in clients[:2]:
        for student in students[client.id]:
            enrollment_service.enroll(open_course.id, student.id)
            enrolled += 1
    for student in students[clients[2].id]:
        enrollment_service.enroll(private_course.id, student.id)
        enrolled += 1
    return [open_course, private_course], enrolled


# ═══════════════════════════════════════════════════════════════════════════
# 4. VEHICLE CATALOG
# ═══════════════════════════════════════════════════════════════════════════

VEHICLES = [
    ("Honda", "Civic", 2019, 0.85),
    ("Mazda", "MX-5", 2020, 0.95),
    ("Toyota", "Camry", 2021, 0.82),
    ("Ford", "Mustang", 2022, 0.97),
]


def seed_vehicles():
    return [
        vehicle_service.create_vehicle({"make": make, "model": model, "year": year, "latacc": latacc})
        for make, model, year, latacc in VEHICLES
    ]


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════

def seed_demo():
    print("  1/4 Accounts...")
    users = seed_accounts()
    print(f"     ✅ {len(users)} accounts")

    print("  2/4 Clients & students...")
    clients, students = seed_clients()
    print(f"     ✅ {len(clients)} clients, {sum(len(s) for s in students.values())} students")

    print("  3/4 Courses, allocations, enrollments...")
    courses, enrolled = seed_courses(clients, students)
    print(f"     ✅ {len(courses)} courses, {enrolled} enrollments")

    print("  4/4 Vehicle catalog...")
    vehicles = seed_vehicles()
    print(f"     ✅ {len(vehicles)} vehicles")

    print(f"\n{'═' * 60}")
    print(f"  🎉 DEMO SEED COMPLETE — open course ID: {courses[0].id}")
    print(f"{'═' * 60}\n")


def main():
    parser = argparse.ArgumentParser(description="Driver Training Admin Console demo seed")
    parser.add_argument("--no-reset", action="store_true",
                        help="Don't clear existing data")
    args = parser.parse_args()

    app = create_app()
    print(f"  🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            print("  ♻️  Database reset complete\n")

        seed_demo()


if __name__ == "__main__":
    main()
