"""
Bed-status synchroniser: Bed.status follows the active admissions that reference it.

    bed set, not discharged      -> Occupied
    bed set, discharged          -> Available
    bed changed away from a bed  -> previous bed Available
    active admission deleted     -> its bed Available

Releasing a bed overrides a Maintenance or Reserved status, but never frees
a bed that another active admission holds. Beds can hold at most one active
admission and cannot take a patient while under maintenance. Callers may move
a free bed between Available, Maintenance and Reserved but never write
Occupied themselves.
"""

import logging
from typing import Any, Dict, Optional

from hms_backend.exceptions import ConstraintViolation
from hms_backend.models import Admission, Bed

logger = logging.getLogger(__name__)

AVAILABLE = "Available"
OCCUPIED = "Occupied"
MAINTENANCE = "Maintenance"


def _set_status(session, bed_id: int, status: str) -> None:
    bed = session.get(Bed, bed_id)
    if bed is None:
        return
    if bed.status != status:
        logger.info(f"Bed {bed_id}: {bed.status} -> {status}")
        bed.status = status
        session.flush()


def active_admission_for_bed(session, bed_id: int, exclude_admission_id: Optional[int] = None):
    q = session.query(Admission).filter(Admission.bed_id == bed_id, Admission.discharge_date.is_(None))
    if exclude_admission_id is not None:
        q = q.filter(Admission.admission_id != exclude_admission_id)
    return q.first()


def guard_bed_assignment(uow, op: str, row: Dict[str, Any], old=None) -> None:
    bed_id = row.get("bed_id")
    if bed_id is None or row.get("discharge_date") is not None:
        return
    other = active_admission_for_bed(uow.session, bed_id, exclude_admission_id=row.get("admission_id"))
    if other is not None:
        raise ConstraintViolation(
            "bed_id", f"bed {bed_id} is already occupied by admission {other.admission_id}", "Admission"
        )
    bed = uow.session.get(Bed, bed_id)
    moving_in = old is None or old.get("bed_id") != bed_id
    if moving_in and bed.status == MAINTENANCE:
        raise ConstraintViolation("bed_id", f"bed {bed_id} is under maintenance", "Admission")


def release_bed(session, bed_id: int) -> None:
    """Mark the bed Available, whatever its status, unless another active admission still holds it."""
    if active_admission_for_bed(session, bed_id) is None:
        _set_status(session, bed_id, AVAILABLE)


def sync_after_write(uow, op: str, row: Dict[str, Any], old=None) -> None:
    session = uow.session
    previous_bed = old.get("bed_id") if old else None
    if previous_bed is not None and previous_bed != row.get("bed_id"):
        release_bed(session, previous_bed)
    if row.get("bed_id") is not None:
        if row.get("discharge_date") is None:
            _set_status(session, row["bed_id"], OCCUPIED)
        else:
            release_bed(session, row["bed_id"])


def free_after_delete(uow, op: str, row: Dict[str, Any], old=None) -> None:
    bed_id = row.get("bed_id")
    if bed_id is None or row.get("discharge_date") is not None:
        return
    if uow.plan is not None and uow.plan.is_doomed("Bed", bed_id):
        return
    release_bed(uow.session, bed_id)


def guard_manual_status(uow, op: str, row: Dict[str, Any], old=None) -> None:
    """Occupied is only ever set by the synchroniser."""
    new_status = row.get("status")
    old_status = old.get("status") if old else None
    if new_status == old_status:
        return
    if new_status == OCCUPIED:
        raise ConstraintViolation("status", "Occupied is derived from active admissions", "Bed")
    if op == "update" and active_admission_for_bed(uow.session, row["bed_id"]) is not None:
        raise ConstraintViolation("status", "bed has an active admission", "Bed")


def register(registry) -> None:
    registry.register("Admission", "check", guard_bed_assignment)
    registry.register("Admission", "after_write", sync_after_write)
    registry.register("Admission", "after_delete", free_after_delete)
    registry.register("Bed", "check", guard_manual_status)
