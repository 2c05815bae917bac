from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from hms_backend.exceptions import ConstraintViolation, DuplicateKey
from hms_backend.services.entity_store import EntityStore
from hms_backend.services.sample_data import SAMPLE_DATA, WWCC_VALIDITY, load_csv, load_sample_data


def test_sample_data_loads_cleanly(store):
    counts = load_sample_data(store)

    assert counts == {entity: len(rows) for entity, rows in SAMPLE_DATA.items()}
    assert store.get("Bed", 2)["status"] == "Occupied"
    assert store.get("Bed", 1)["status"] == "Available"
    assert store.get("Department", "Pediatrics")["staff_headcount"] == 2
    assert store.get("BillingStatement", 1)["remaining_balance"] == Decimal("700")
    assert [p["card_last_four"] for p in store.query("Payment")] == ["9012", "1234"]


def test_sample_clearance_follows_the_clock(engine):
    later = date(2031, 1, 1)
    store = EntityStore(sessionmaker(bind=engine, autoflush=False), clock=lambda: later)

    load_sample_data(store)

    assert store.get("Nurse", 4)["wwcc_expiry_date"] == later + WWCC_VALIDITY


def test_sample_data_cannot_be_loaded_twice(store):
    load_sample_data(store)
    with pytest.raises(DuplicateKey):
        load_sample_data(store)


def test_load_csv_strips_and_deduplicates(store):
    csv = (
        b"dept_name,operating_hours\n"
        b" Cardiology ,24 Hours\n"
        b"Oncology,9:00 AM - 5:00 PM\n"
        b"Cardiology,8:00 AM - 6:00 PM\n"
    )
    assert load_csv(store, "Department", csv) == 2
    assert store.get("Department", "Cardiology")["operating_hours"] == "24 Hours"
    assert store.get("Department", "Oncology")["staff_headcount"] == 0


def test_load_csv_requires_mandatory_columns(store):
    with pytest.raises(ValueError, match="operating_hours"):
        load_csv(store, "Department", b"dept_name\nCardiology\n")


def test_load_csv_is_all_or_nothing(store, tmp_path):
    store.create("Department", {"dept_name": "General", "operating_hours": "24 Hours"})
    path = tmp_path / "wards.csv"
    path.write_text(
        "ward_name,dept_name,ward_type\n"
        "Ward A,General,General\n"
        "Ward B,General,Maternity\n"
    )
    with pytest.raises(ConstraintViolation):
        load_csv(store, "Ward", path)
    assert store.query("Ward") == []
