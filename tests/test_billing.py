from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from hms_backend.exceptions import ConstraintViolation, DuplicateKey
from hms_backend.services.billing import last_four, remaining_balance

from conftest import TODAY


@pytest.fixture
def admission(make_admission):
    return make_admission(discharge_date=date(2025, 5, 25))


def _statement(admission_id, total, insurance, **extra):
    return {
        "admission_id": admission_id,
        "discharge_date": "2025-05-25",
        "services_description": "Inpatient care",
        "total_cost": total,
        "insurance_covered_amount": insurance,
        **extra,
    }


def test_remaining_balance_helper():
    assert remaining_balance("1000", "800.50") == Decimal("199.50")
    assert remaining_balance(None, "1") is None


def test_total_cost_ceiling_is_inclusive(store, admission):
    statement = store.create("BillingStatement", _statement(admission["admission_id"], "50000", "0"))
    assert statement["remaining_balance"] == Decimal("50000")


def test_total_cost_above_ceiling_is_rejected(store, admission):
    with pytest.raises(ConstraintViolation) as exc:
        store.create("BillingStatement", _statement(admission["admission_id"], "50001", "0"))
    assert exc.value.field == "total_cost"
    assert store.query("BillingStatement") == []


def test_insurance_above_total_is_rejected(store, admission):
    with pytest.raises(ConstraintViolation):
        store.create("BillingStatement", _statement(admission["admission_id"], "1000", "1200"))


def test_caller_supplied_balance_is_ignored(store, admission):
    statement = store.create(
        "BillingStatement", _statement(admission["admission_id"], "1500", "1200", remaining_balance="9999")
    )
    assert statement["remaining_balance"] == Decimal("300")

    updated = store.update(
        "BillingStatement", statement["billing_id"], {"insurance_covered_amount": "1000", "remaining_balance": "1"}
    )
    assert updated["remaining_balance"] == Decimal("500")
    assert store.get("BillingStatement", statement["billing_id"])["remaining_balance"] == Decimal("500")


def test_one_statement_per_admission(store, admission):
    store.create("BillingStatement", _statement(admission["admission_id"], "100", "0"))
    with pytest.raises(DuplicateKey) as exc:
        store.create("BillingStatement", _statement(admission["admission_id"], "200", "0"))
    assert exc.value.field == "admission_id"


def test_invoice_defaults(store, admission):
    statement = store.create("BillingStatement", _statement(admission["admission_id"], "100", "0"))
    invoice = store.create("Invoice", {"billing_id": statement["billing_id"], "amount_due": "100"})
    assert invoice["issue_date"] == TODAY
    assert invoice["payment_status"] == "Unpaid"


@pytest.mark.parametrize("raw, expected", [
    ("4111111111111234", "1234"),
    ("4111 1111 1111 5678", "5678"),
    ("5500-0000-0000-0004", "0004"),
])
def test_last_four(raw, expected):
    assert last_four(raw) == expected


@pytest.mark.parametrize("raw", ["1234", "4111-abcd-1111-1111", ""])
def test_last_four_rejects_malformed_numbers(raw):
    with pytest.raises(ConstraintViolation):
        last_four(raw)


def test_payment_keeps_only_last_four_digits(store, admission):
    statement = store.create("BillingStatement", _statement(admission["admission_id"], "300", "0"))
    invoice = store.create("Invoice", {"billing_id": statement["billing_id"], "amount_due": "300"})

    payment = store.create("Payment", {
        "invoice_id": invoice["invoice_id"],
        "cardholder_name": "John Smith",
        "card_number": "4111 1111 1111 4242",
        "cvv": "123",
        "card_expiry_date": "2027-12-31",
        "payment_amount": "300",
    })

    assert payment["card_last_four"] == "4242"
    assert payment["payment_date"] == TODAY
    assert payment["payment_status"] == "Pending"
    assert "card_number" not in payment and "cvv" not in payment


def test_billing_chain_follows_the_admission_on_delete(store, admission):
    statement = store.create("BillingStatement", _statement(admission["admission_id"], "300", "0"))
    invoice = store.create("Invoice", {"billing_id": statement["billing_id"], "amount_due": "300"})
    store.create("Payment", {
        "invoice_id": invoice["invoice_id"], "cardholder_name": "John Smith",
        "card_last_four": "4242", "card_expiry_date": "2027-12-31", "payment_amount": "300",
    })

    counts = store.delete("Admission", admission["admission_id"])

    assert counts == {
        "PlannedAdmission": 1, "Payment": 1, "Invoice": 1, "BillingStatement": 1, "Admission": 1,
    }
    for entity_type in ("BillingStatement", "Invoice", "Payment"):
        assert store.query(entity_type) == []


def test_patient_delete_reaches_every_billing_row(store, patient, admission):
    statement = store.create("BillingStatement", _statement(admission["admission_id"], "300", "100"))
    invoice = store.create("Invoice", {"billing_id": statement["billing_id"], "amount_due": "200"})
    store.create("Payment", {
        "invoice_id": invoice["invoice_id"], "cardholder_name": "John Smith",
        "card_last_four": "4242", "card_expiry_date": "2027-12-31", "payment_amount": "200",
    })

    counts = store.delete("Patient", patient["patient_id"])

    assert counts["Patient"] == 1 and counts["Payment"] == 1
    for entity_type in ("Admission", "PlannedAdmission", "BillingStatement", "Invoice", "Payment"):
        assert store.query(entity_type) == []


def test_non_finite_total_is_a_constraint_violation(store, admission):
    with pytest.raises(ConstraintViolation) as exc:
        store.create("BillingStatement", _statement(admission["admission_id"], "NaN", "0"))
    assert exc.value.field == "total_cost"
    assert store.query("BillingStatement") == []
