"""Shared fixtures: in-memory database, fixed clock, seeded accounts."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from app.auth import create_access_token, hash_password
from app.db import get_session, init_db
from app.deps import get_now
from app.main import app
from app.models import Appointment, Patient, Service, User

# A Sunday; the first bookable weekday is Monday 2025-06-09
NOW = datetime(2025, 6, 1, 9, 0)

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    """Mutable clock read by the app through the get_now override."""
    return {"now": NOW}


@pytest.fixture
def client(engine, clock):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_now] = lambda: clock["now"]
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(engine):
    """Two services, two active patients and one account per staff role."""
    with Session(engine) as s:
        general = Service(name="General Consultation", category="general")
        healthcard = Service(name="Health Card", category="healthcard")
        s.add(general)
        s.add(healthcard)
        s.commit()

        accounts = [
            ("patient", "patient", None),
            ("other", "patient", None),
            ("doctor", "doctor", None),
            ("admin", "healthcare_admin", general.id),
            ("cardadmin", "healthcare_admin", healthcard.id),
            ("root", "super_admin", None),
        ]
        users = {}
        for key, role, assigned in accounts:
            user = User(
                email=f"{key}@cho.test",
                password_hash=PASSWORD_HASH,
                role=role,
                status="active",
                first_name=key.title(),
                last_name="Test",
                assigned_service_id=assigned,
            )
            s.add(user)
            users[key] = user
        s.flush()

        patient = Patient(user_id=users["patient"].id, patient_number="P-000001")
        other = Patient(user_id=users["other"].id, patient_number="P-000002")
        s.add(patient)
        s.add(other)
        s.commit()

        return SimpleNamespace(
            general_id=general.id,
            healthcard_id=healthcard.id,
            patient_id=patient.id,
            other_patient_id=other.id,
            user_ids={key: user.id for key, user in users.items()},
        )


def auth_headers(email: str) -> dict:
    token = create_access_token({"sub": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(seed):
    return {key: auth_headers(f"{key}@cho.test") for key in seed.user_ids}


@pytest.fixture
def add_appointment(engine):
    """Insert an appointment row directly, bypassing the booking rules."""

    def _add(**fields):
        fields.setdefault("status", "scheduled")
        fields.setdefault("time_block", "AM")
        with Session(engine) as s:
            appt = Appointment(**fields)
            s.add(appt)
            s.commit()
            return appt.id

    return _add
