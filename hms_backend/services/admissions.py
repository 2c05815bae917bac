"""
Admissions: tagged-variant admission records and discharge.

Every Admission carries exactly one detail record, PlannedAdmission or
EmergencyAdmission, chosen by admission_type. The pairing is checked when the
unit of work commits so the admission and its detail can be written in either
order inside one transaction.
"""

import logging
from datetime import date
from typing import Any, Dict

from hms_backend.exceptions import ConstraintViolation
from hms_backend.models import Admission, EmergencyAdmission, PlannedAdmission

logger = logging.getLogger(__name__)

DETAIL_MODELS = {"Planned": PlannedAdmission, "Emergency": EmergencyAdmission}


def track_admission(uow, op: str, row: Dict[str, Any], old=None) -> None:
    if op == "insert" or (old and old.get("admission_type") != row.get("admission_type")):
        uow.touched_admissions.add(row["admission_id"])


def track_detail(uow, op: str, row: Dict[str, Any], old=None) -> None:
    uow.touched_admissions.add(row["admission_id"])


def guard_detail_delete(uow, op: str, row: Dict[str, Any], old=None) -> None:
    admission_id = row["admission_id"]
    if uow.plan is None or not uow.plan.is_doomed("Admission", admission_id):
        raise ConstraintViolation(
            "admission_id", "admission detail records are removed with their Admission", "Admission"
        )


def check_touched_admissions(uow) -> None:
    """Each admission written in this unit of work has exactly one detail row, matching its type."""
    session = uow.session
    for admission_id in sorted(uow.touched_admissions):
        admission = session.get(Admission, admission_id)
        if admission is None:
            continue
        present = [kind for kind, model in DETAIL_MODELS.items() if session.get(model, admission_id) is not None]
        if present != [admission.admission_type]:
            raise ConstraintViolation(
                "admission_type",
                f"admission {admission_id} of type {admission.admission_type} needs exactly one "
                f"matching detail record, found {present or 'none'}",
                "Admission",
            )


def admit_patient(store, payload) -> Dict[str, Any]:
    """
    Create an Admission and its Planned/Emergency detail atomically.

    payload is a schemas.AdmissionCreate whose details field is a tagged
    union discriminated by admission_type.
    """
    details = payload.details
    values = payload.model_dump(exclude={"details"})
    values["admission_type"] = details.admission_type
    with store.transaction() as uow:
        admission = uow.create("Admission", values)
        detail_values = details.model_dump(exclude={"admission_type"})
        detail_values["admission_id"] = admission["admission_id"]
        detail = uow.create(f"{details.admission_type}Admission", detail_values)
    logger.info(
        f"Admitted patient {admission['patient_id']} as {details.admission_type} "
        f"admission {admission['admission_id']}"
    )
    return {"admission": admission, "details": detail}


def discharge(store, admission_id: int, discharge_date: date) -> Dict[str, Any]:
    """Set the discharge date; the bed synchroniser frees the bed."""
    with store.transaction() as uow:
        current = uow.get("Admission", admission_id)
        if current["discharge_date"] is not None:
            raise ConstraintViolation("discharge_date", f"admission {admission_id} is already discharged", "Admission")
        return uow.update("Admission", admission_id, {"discharge_date": discharge_date})


def register(registry) -> None:
    registry.register("Admission", "after_write", track_admission)
    registry.register("PlannedAdmission", "after_write", track_detail)
    registry.register("EmergencyAdmission", "after_write", track_detail)
    registry.register("PlannedAdmission", "after_delete", guard_detail_delete)
    registry.register("EmergencyAdmission", "after_delete", guard_detail_delete)
