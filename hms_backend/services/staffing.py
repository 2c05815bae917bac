"""
Staffing: derived department headcount and tagged-variant staff registration.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func

from hms_backend.exceptions import ConstraintViolation
from hms_backend.models import Department, Staff

logger = logging.getLogger(__name__)


def headcount(session, dept_name: str) -> int:
    return session.query(func.count(Staff.staff_id)).filter(Staff.dept_name == dept_name).scalar()


def _recount(uow, dept_name: Optional[str]) -> None:
    if dept_name is None:
        return
    if uow.plan is not None and uow.plan.is_doomed("Department", dept_name):
        return
    department = uow.session.get(Department, dept_name)
    if department is None:
        return
    department.staff_headcount = headcount(uow.session, dept_name)
    uow.session.flush()


def strip_headcount(uow, op: str, values: Dict[str, Any], old=None) -> None:
    values.pop("staff_headcount", None)


def derive_headcount(uow, op: str, row: Dict[str, Any], old=None) -> None:
    row["staff_headcount"] = headcount(uow.session, row["dept_name"]) if op == "update" else 0


def recount_after_write(uow, op: str, row: Dict[str, Any], old=None) -> None:
    _recount(uow, row.get("dept_name"))
    if old and old.get("dept_name") != row.get("dept_name"):
        _recount(uow, old.get("dept_name"))


def recount_after_delete(uow, op: str, row: Dict[str, Any], old=None) -> None:
    _recount(uow, row.get("dept_name"))


def _owned_by_staff_closure(uow, entity_type: str, staff_id: int) -> None:
    if uow.plan is None or not uow.plan.is_doomed("Staff", staff_id):
        raise ConstraintViolation(
            staff_id_field(entity_type),
            f"{entity_type} records are removed by deleting the owning Staff record",
            entity_type,
        )


def staff_id_field(entity_type: str) -> str:
    return "doctor_id" if entity_type == "Doctor" else "nurse_id"


def guard_doctor_delete(uow, op: str, row: Dict[str, Any], old=None) -> None:
    _owned_by_staff_closure(uow, "Doctor", row["doctor_id"])


def guard_nurse_delete(uow, op: str, row: Dict[str, Any], old=None) -> None:
    _owned_by_staff_closure(uow, "Nurse", row["nurse_id"])


def register_staff(store, payload) -> Dict[str, Any]:
    """
    Persist a Staff record together with its role-specific detail in one transaction.

    payload is a schemas.StaffCreate; its role field is a tagged union of
    DoctorRole / NurseRole / AlliedHealthRole. Returns the staff row plus the
    detail row (and specialties for doctors).
    """
    role = payload.role
    staff_values = payload.model_dump(exclude={"role"})
    staff_values["staff_type"] = role.staff_type
    with store.transaction() as uow:
        staff = uow.create("Staff", staff_values)
        staff_id = staff["staff_id"]
        result: Dict[str, Any] = {"staff": staff}
        if role.staff_type == "Doctor":
            result["doctor"] = uow.create("Doctor", {
                "doctor_id": staff_id,
                "license_number": role.license_number,
                "license_expiry": role.license_expiry,
            })
            result["specialties"] = [
                uow.create("DoctorSpecialty", {"doctor_id": staff_id, **specialty.model_dump()})
                for specialty in role.specialties
            ]
        elif role.staff_type == "Nurse":
            result["nurse"] = uow.create("Nurse", {
                "nurse_id": staff_id,
                "wwcc_clearance": role.wwcc_clearance,
                "wwcc_expiry_date": role.wwcc_expiry_date,
            })
    logger.info(f"Registered {role.staff_type} staff member {staff_id}")
    return result


def register(registry) -> None:
    registry.register("Department", "prepare", strip_headcount)
    registry.register("Department", "derive", derive_headcount)
    registry.register("Staff", "after_write", recount_after_write)
    registry.register("Staff", "after_delete", recount_after_delete)
    registry.register("Doctor", "after_delete", guard_doctor_delete)
    registry.register("Nurse", "after_delete", guard_nurse_delete)
