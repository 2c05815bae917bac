"""
Specialty-count rule: every doctor holds between 1 and 5 specialties.

Fires after each DoctorSpecialty insert, update and delete. Deletes that are
part of the owning doctor's own cascade are exempt; a doctor's last specialty
can otherwise never be removed. At commit every doctor touched by the unit of
work is re-counted, so a Doctor can't be committed without a specialty.
"""

import logging
from typing import Any, Dict

from sqlalchemy import func

from hms_backend.exceptions import ConstraintViolation, MinimumSpecialtyViolation, TooManySpecialties
from hms_backend.models import Doctor, DoctorSpecialty

logger = logging.getLogger(__name__)

MIN_SPECIALTIES = 1
MAX_SPECIALTIES = 5


def specialty_count(session, doctor_id: int) -> int:
    return session.query(func.count()).select_from(DoctorSpecialty).filter(
        DoctorSpecialty.doctor_id == doctor_id
    ).scalar()


def lock_doctor(uow, doctor_id: int) -> None:
    """Serialise specialty mutations for one doctor: in-process lock plus a row lock on backends that have one."""
    uow.acquire(("doctor", doctor_id))
    uow.session.query(Doctor).filter(Doctor.doctor_id == doctor_id).with_for_update().first()


def guard_specialty_write(uow, op: str, row: Dict[str, Any], old=None) -> None:
    lock_doctor(uow, row["doctor_id"])
    if row.get("is_primary"):
        others = uow.session.query(DoctorSpecialty).filter(
            DoctorSpecialty.doctor_id == row["doctor_id"],
            DoctorSpecialty.specialty_name != row["specialty_name"],
            DoctorSpecialty.is_primary.is_(True),
        ).count()
        if others:
            raise ConstraintViolation("is_primary", "doctor already has a primary specialty", "DoctorSpecialty")


def enforce_maximum(uow, op: str, row: Dict[str, Any], old=None) -> None:
    doctor_id = row["doctor_id"]
    count = specialty_count(uow.session, doctor_id)
    if count > MAX_SPECIALTIES:
        raise TooManySpecialties(doctor_id, count)
    uow.touched_doctors.add(doctor_id)


def enforce_minimum(uow, op: str, row: Dict[str, Any], old=None) -> None:
    doctor_id = row["doctor_id"]
    if uow.plan is not None and uow.plan.is_doomed("Doctor", doctor_id):
        return
    lock_doctor(uow, doctor_id)
    count = specialty_count(uow.session, doctor_id)
    if count < MIN_SPECIALTIES:
        raise MinimumSpecialtyViolation(doctor_id, count)
    uow.touched_doctors.add(doctor_id)


def track_new_doctor(uow, op: str, row: Dict[str, Any], old=None) -> None:
    uow.touched_doctors.add(row["doctor_id"])


def check_touched_doctors(uow) -> None:
    """Commit-time recount for doctors created or whose specialties changed."""
    for doctor_id in sorted(uow.touched_doctors):
        if uow.session.get(Doctor, doctor_id) is None:
            continue
        count = specialty_count(uow.session, doctor_id)
        if count < MIN_SPECIALTIES:
            raise MinimumSpecialtyViolation(doctor_id, count)
        if count > MAX_SPECIALTIES:
            raise TooManySpecialties(doctor_id, count)


def register(registry) -> None:
    registry.register("DoctorSpecialty", "check", guard_specialty_write)
    registry.register("DoctorSpecialty", "after_write", enforce_maximum)
    registry.register("DoctorSpecialty", "after_delete", enforce_minimum)
    registry.register("Doctor", "after_write", track_new_doctor)
