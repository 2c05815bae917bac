from __future__ import annotations

from datetime import date, datetime

import pytest

from hms_backend.exceptions import ConstraintViolation, DanglingReference, DuplicateKey
from hms_backend.schemas import AdmissionCreate
from hms_backend.services import admissions


def _payload(patient_id, details, **overrides):
    data = {
        "patient_id": patient_id,
        "admission_date": "2025-05-30T08:15:00",
        "details": details,
    }
    data.update(overrides)
    return AdmissionCreate.model_validate(data)


def test_admit_planned_patient(store, patient, make_bed):
    bed = make_bed()
    result = admissions.admit_patient(store, _payload(
        patient["patient_id"],
        {"admission_type": "Planned", "referring_practitioner": "Dr. Mary Thompson", "reference_number": "REF9"},
        bed_id=bed["bed_id"],
    ))

    admission = result["admission"]
    assert admission["admission_type"] == "Planned"
    assert admission["admission_date"] == datetime(2025, 5, 30, 8, 15)
    assert result["details"]["reference_number"] == "REF9"
    assert store.get("Bed", bed["bed_id"])["status"] == "Occupied"


def test_admit_emergency_patient_with_triage_nurse(store, patient, make_nurse):
    nurse_id = make_nurse()
    result = admissions.admit_patient(store, _payload(
        patient["patient_id"],
        {"admission_type": "Emergency", "triage_nurse_id": nurse_id, "severity_level": "Critical",
         "patient_condition": "Chest pain"},
        nurse_id=nurse_id,
    ))
    assert result["details"]["triage_nurse_id"] == nurse_id
    assert store.query("PlannedAdmission") == []


def test_admitting_nurse_must_be_a_nurse(store, patient, make_doctor):
    doctor_id = make_doctor()
    with pytest.raises(DanglingReference):
        admissions.admit_patient(store, _payload(
            patient["patient_id"], {"admission_type": "Emergency"}, nurse_id=doctor_id,
        ))
    assert store.query("Admission") == []


def test_admission_without_detail_is_rejected_at_commit(store, patient):
    with pytest.raises(ConstraintViolation) as exc:
        store.create("Admission", {
            "patient_id": patient["patient_id"], "admission_date": "2025-05-30T08:15:00", "admission_type": "Planned",
        })
    assert exc.value.field == "admission_type"
    assert store.query("Admission") == []


def test_detail_must_match_the_admission_type(store, patient):
    with pytest.raises(ConstraintViolation):
        with store.transaction() as uow:
            admission = uow.create("Admission", {
                "patient_id": patient["patient_id"], "admission_date": "2025-05-30T08:15:00",
                "admission_type": "Emergency",
            })
            uow.create("PlannedAdmission", {
                "admission_id": admission["admission_id"],
                "referring_practitioner": "Dr. Peter Anderson",
                "reference_number": "REF1",
            })


def test_admission_type_cannot_change_under_its_detail(store, make_admission):
    admission = make_admission()
    with pytest.raises(ConstraintViolation) as exc:
        store.update("Admission", admission["admission_id"], {"admission_type": "Emergency"})
    assert exc.value.field == "admission_type"


def test_reference_numbers_are_unique(store, patient, make_admission):
    make_admission()
    with pytest.raises(DuplicateKey):
        admissions.admit_patient(store, _payload(
            patient["patient_id"],
            {"admission_type": "Planned", "referring_practitioner": "Dr. X", "reference_number": "REF0001"},
        ))


def test_discharge_before_admission_is_rejected(store, make_admission):
    admission = make_admission()
    with pytest.raises(ConstraintViolation):
        admissions.discharge(store, admission["admission_id"], date(2025, 5, 1))
    assert store.get("Admission", admission["admission_id"])["discharge_date"] is None


def test_deleting_a_nurse_clears_admission_references(store, patient, make_nurse):
    nurse_id = make_nurse()
    result = admissions.admit_patient(store, _payload(
        patient["patient_id"],
        {"admission_type": "Emergency", "triage_nurse_id": nurse_id},
        nurse_id=nurse_id,
    ))
    admission_id = result["admission"]["admission_id"]

    assert store.delete("Staff", nurse_id) == {"Nurse": 1, "Staff": 1}
    assert store.get("Admission", admission_id)["nurse_id"] is None
    assert store.get("EmergencyAdmission", admission_id)["triage_nurse_id"] is None
