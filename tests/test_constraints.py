"""Exercise the field-level and same-row rules of :mod:`hms_backend.services.constraints`."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from hms_backend.exceptions import ConstraintViolation
from hms_backend.services import constraints

TODAY = date(2025, 6, 1)


def _bed(**overrides):
    row = {
        "bed_id": None, "ward_id": 1, "bed_length": Decimal("2.00"), "bed_width": Decimal("1.00"),
        "mattress_thickness": Decimal("16.00"), "comfort_level": None, "bed_cost": Decimal("50.00"),
        "status": "Available",
    }
    row.update(overrides)
    return row


def _billing(total, insurance):
    return {
        "billing_id": None, "admission_id": 1, "discharge_date": date(2025, 5, 1),
        "services_description": None, "total_cost": Decimal(total),
        "insurance_covered_amount": Decimal(insurance), "remaining_balance": None,
    }


@pytest.mark.parametrize("field, value", [
    ("bed_length", Decimal("2.14")),
    ("bed_length", Decimal("0")),
    ("bed_width", Decimal("1.28")),
    ("mattress_thickness", Decimal("15.23")),
    ("mattress_thickness", Decimal("17.79")),
    ("bed_cost", Decimal("-1")),
])
def test_bed_dimension_limits(field, value):
    with pytest.raises(ConstraintViolation) as exc:
        constraints.validate("Bed", _bed(**{field: value}), TODAY)
    assert exc.value.field == field
    assert exc.value.entity == "Bed"


def test_bed_limits_are_inclusive_at_the_top():
    constraints.validate(
        "Bed", _bed(bed_length=Decimal("2.13"), bed_width=Decimal("1.27"), mattress_thickness=Decimal("17.78")), TODAY
    )
    constraints.validate("Bed", _bed(mattress_thickness=Decimal("15.24")), TODAY)


def test_total_cost_bounds():
    constraints.validate("BillingStatement", _billing("50000", "0"), TODAY)
    with pytest.raises(ConstraintViolation) as exc:
        constraints.validate("BillingStatement", _billing("50001", "0"), TODAY)
    assert exc.value.rule == "total_cost must be in (0, 50000]"
    with pytest.raises(ConstraintViolation):
        constraints.validate("BillingStatement", _billing("0", "0"), TODAY)


def test_insurance_cannot_exceed_total():
    with pytest.raises(ConstraintViolation) as exc:
        constraints.validate("BillingStatement", _billing("100", "100.01"), TODAY)
    assert exc.value.field == "insurance_covered_amount"


def test_nurse_wwcc_requires_future_expiry():
    with pytest.raises(ConstraintViolation) as exc:
        constraints.validate("Nurse", {"nurse_id": 1, "wwcc_clearance": True, "wwcc_expiry_date": None}, TODAY)
    assert exc.value.field == "wwcc_expiry_date"
    with pytest.raises(ConstraintViolation):
        constraints.validate("Nurse", {"nurse_id": 1, "wwcc_clearance": True, "wwcc_expiry_date": TODAY}, TODAY)
    constraints.validate("Nurse", {"nurse_id": 1, "wwcc_clearance": False, "wwcc_expiry_date": None}, TODAY)


def test_doctor_license_pairing_and_expiry():
    constraints.validate("Doctor", {"doctor_id": 1, "license_number": None, "license_expiry": None}, TODAY)
    with pytest.raises(ConstraintViolation):
        constraints.validate("Doctor", {"doctor_id": 1, "license_number": "MED1", "license_expiry": None}, TODAY)
    with pytest.raises(ConstraintViolation):
        constraints.validate(
            "Doctor", {"doctor_id": 1, "license_number": "MED1", "license_expiry": date(2024, 1, 1)}, TODAY
        )


def test_discharge_compares_against_admission_day():
    row = {
        "admission_id": None, "patient_id": 1, "admission_date": datetime(2025, 5, 1, 23, 30),
        "admission_type": "Planned", "nurse_id": None, "doctor_id": None, "bed_id": None,
        "discharge_date": date(2025, 5, 1),
    }
    constraints.validate("Admission", row, TODAY)
    row["discharge_date"] = date(2025, 4, 30)
    with pytest.raises(ConstraintViolation):
        constraints.validate("Admission", row, TODAY)


def test_invoice_due_date_not_before_issue():
    row = {
        "invoice_id": None, "billing_id": 1, "issue_date": date(2025, 5, 2), "due_date": date(2025, 5, 1),
        "amount_due": Decimal("10"), "payment_status": "Unpaid",
    }
    with pytest.raises(ConstraintViolation) as exc:
        constraints.validate("Invoice", row, TODAY)
    assert exc.value.field == "due_date"


def test_coerce_row_converts_strings_and_rejects_unknown_fields():
    row = constraints.coerce_row("Admission", {
        "patient_id": "3", "admission_date": "2024-08-20 14:00:00", "discharge_date": "2024-08-25",
    })
    assert row == {
        "patient_id": 3,
        "admission_date": datetime(2024, 8, 20, 14, 0),
        "discharge_date": date(2024, 8, 25),
    }
    assert constraints.coerce_row("Bed", {"bed_cost": 12.5})["bed_cost"] == Decimal("12.50")

    with pytest.raises(ConstraintViolation) as exc:
        constraints.coerce_row("Patient", {"shoe_size": 42})
    assert exc.value.rule == "unknown field"
    with pytest.raises(ConstraintViolation):
        constraints.coerce_row("Patient", {"date_of_birth": "not a date"})


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-inf", "sNaN"])
def test_non_finite_amounts_are_rejected(raw):
    with pytest.raises(ConstraintViolation) as exc:
        constraints.coerce_row("BillingStatement", {"total_cost": raw})
    assert exc.value.field == "total_cost"
    assert exc.value.entity == "BillingStatement"


def test_integer_columns_refuse_fractions():
    assert constraints.coerce_row("Bed", {"ward_id": 2.0})["ward_id"] == 2
    assert constraints.coerce_row("Bed", {"ward_id": Decimal("3")})["ward_id"] == 3
    for raw in (2.9, Decimal("2.5"), "1.9", float("nan")):
        with pytest.raises(ConstraintViolation) as exc:
            constraints.coerce_row("Bed", {"ward_id": raw})
        assert exc.value.field == "ward_id"


@pytest.mark.parametrize("raw, expected", [
    ("true", True), (" Yes ", True), ("1", True), ("f", False), ("NO", False), ("0", False), (True, True),
])
def test_boolean_vocabulary(raw, expected):
    assert constraints.coerce_row("Nurse", {"wwcc_clearance": raw})["wwcc_clearance"] is expected


def test_unknown_boolean_words_are_rejected():
    with pytest.raises(ConstraintViolation) as exc:
        constraints.coerce_row("Nurse", {"wwcc_clearance": "banana"})
    assert exc.value.field == "wwcc_clearance"
