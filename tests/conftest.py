import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
for _name in ("BOOTSTRAP_ADMIN_USERNAME", "BOOTSTRAP_ADMIN_EMAIL", "BOOTSTRAP_ADMIN_PASSWORD"):
    os.environ.pop(_name, None)

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from clinic_booking.core.security import get_password_hash  # noqa: E402
from clinic_booking.database import Base, SessionLocal, engine  # noqa: E402
from clinic_booking.main import app  # noqa: E402
from clinic_booking.models.doctor import Doctor  # noqa: E402
from clinic_booking.models.patient import Patient  # noqa: E402
from clinic_booking.models.room import Room, RoomType  # noqa: E402
from clinic_booking.models.service import Service  # noqa: E402
from clinic_booking.models.user import Role, User  # noqa: E402

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def fresh_schema():
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def clinic(db):
    """A receptionist, two patients, two doctors (one inactive), two rooms and a service."""
    receptionist = User(
        username="frontdesk",
        email="frontdesk@clinic.example.com",
        hashed_password=get_password_hash(PASSWORD),
        role=Role.RECEPTIONIST,
    )
    patient = Patient(first_name="Ada", last_name="Lovelace", dob=date(1985, 12, 10),
                      email="ada@example.com", phone="555-0100")
    other_patient = Patient(first_name="Alan", last_name="Turing", dob=date(1982, 6, 23))
    doctor = Doctor(first_name="Gregory", last_name="House", license_number="LIC-001")
    other_doctor = Doctor(first_name="James", last_name="Wilson", license_number="LIC-002")
    inactive_doctor = Doctor(first_name="Lisa", last_name="Cuddy", license_number="LIC-003", active=False)
    room = Room(room_number="101")
    exam_room = Room(room_number="102", type=RoomType.EXAM)
    service = Service(code="CONS", name="Consultation", duration_minutes=20, price=50)

    db.add_all([
        receptionist, patient, other_patient, doctor, other_doctor,
        inactive_doctor, room, exam_room, service,
    ])
    db.commit()
    return SimpleNamespace(
        receptionist=receptionist,
        patient=patient,
        other_patient=other_patient,
        doctor=doctor,
        other_doctor=other_doctor,
        inactive_doctor=inactive_doctor,
        room=room,
        exam_room=exam_room,
        service=service,
    )


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    """Bearer headers for a freshly registered receptionist."""
    response = client.post(
        "/api/auth/register",
        json={"username": "frontdesk", "email": "frontdesk@clinic.example.com", "password": PASSWORD},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    """Bearer headers for an admin created directly in the database."""
    session = SessionLocal()
    try:
        session.add(User(
            username="admin",
            email="admin@clinic.example.com",
            hashed_password=get_password_hash(PASSWORD),
            role=Role.ADMIN,
        ))
        session.commit()
    finally:
        session.close()

    response = client.post("/api/auth/login", json={"username": "admin", "password": PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
