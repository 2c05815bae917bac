from __future__ import annotations

import os
from datetime import date, datetime

# The package builds its engine at import time; point it at in-memory SQLite first.
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy.orm import sessionmaker

from hms_backend.database import create_tables, make_engine
from hms_backend.services.entity_store import EntityStore

TODAY = date(2025, 6, 1)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    create_tables(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> EntityStore:
    return EntityStore(sessionmaker(bind=engine, autoflush=False), clock=lambda: TODAY)


@pytest.fixture
def ward(store):
    """A department with one General ward; returns the ward row."""
    store.create("Department", {"dept_name": "General", "operating_hours": "24 Hours"})
    return store.create("Ward", {"ward_name": "Ward A", "dept_name": "General", "ward_type": "General"})


@pytest.fixture
def make_bed(store, ward):
    def _make(**overrides):
        values = {
            "ward_id": ward["ward_id"],
            "bed_length": "2.00",
            "bed_width": "1.00",
            "mattress_thickness": "16.00",
            "bed_cost": "50.00",
        }
        values.update(overrides)
        return store.create("Bed", values)
    return _make


@pytest.fixture
def make_specialty(store):
    def _make(name, category="Medical"):
        return store.create("Specialty", {"specialty_name": name, "category": category})
    return _make


def staff_values(staff_type, **overrides):
    values = {
        "full_name": f"Test {staff_type}",
        "mobile": "0400000000",
        "address": "1 Hospital Rd",
        "salary": "90000",
        "staff_type": staff_type,
    }
    values.update(overrides)
    return values


@pytest.fixture
def make_doctor(store, make_specialty):
    """Create Staff + Doctor + specialties in one transaction; returns the doctor id."""
    def _make(specialties=("General Medicine",), **staff_overrides):
        existing = {row["specialty_name"] for row in store.query("Specialty")}
        for name in specialties:
            if name not in existing:
                make_specialty(name)
        with store.transaction() as uow:
            staff = uow.create("Staff", staff_values("Doctor", **staff_overrides))
            uow.create("Doctor", {"doctor_id": staff["staff_id"]})
            for name in specialties:
                uow.create("DoctorSpecialty", {
                    "doctor_id": staff["staff_id"],
                    "specialty_name": name,
                    "training_date": "2015-06-15",
                    "proficiency_level": "Expert",
                })
        return staff["staff_id"]
    return _make


@pytest.fixture
def make_nurse(store):
    def _make(**nurse_overrides):
        with store.transaction() as uow:
            staff = uow.create("Staff", staff_values("Nurse"))
            uow.create("Nurse", {"nurse_id": staff["staff_id"], **nurse_overrides})
        return staff["staff_id"]
    return _make


@pytest.fixture
def patient(store):
    return store.create("Patient", {
        "full_name": "John Smith",
        "email": "john.smith@email.com",
        "address": "10 Patient St",
        "date_of_birth": "1985-03-15",
        "mobile": "0456789012",
        "emergency_contact_name": "Jane Smith",
        "emergency_contact_phone": "0467890123",
        "insurance_number": "INS123456",
    })


@pytest.fixture
def make_admission(store, patient):
    """Planned admission with its detail row, written in one transaction; returns the admission row."""
    counter = {"n": 0}

    def _make(bed_id=None, discharge_date=None, **overrides):
        counter["n"] += 1
        values = {
            "patient_id": patient["patient_id"],
            "admission_date": datetime(2025, 5, 20, 9, 0),
            "admission_type": "Planned",
            "bed_id": bed_id,
            "discharge_date": discharge_date,
        }
        values.update(overrides)
        with store.transaction() as uow:
            admission = uow.create("Admission", values)
            uow.create("PlannedAdmission", {
                "admission_id": admission["admission_id"],
                "referring_practitioner": "Dr. Peter Anderson",
                "reference_number": f"REF{counter['n']:04d}",
            })
        return admission
    return _make
