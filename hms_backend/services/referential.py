"""
Referential integrity: foreign-key existence on write, CASCADE / SET NULL closure on delete.

The reference table below is the single source of truth for relationships
between entities; deletion order falls out of a depth-first walk over it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from hms_backend import models
from hms_backend.exceptions import ConstraintViolation, DanglingReference

logger = logging.getLogger(__name__)

CASCADE = "CASCADE"
SET_NULL = "SET NULL"


@dataclass(frozen=True)
class Reference:
    source: str
    field: str
    target: str
    on_delete: str
    # (target column, required value): the target row must carry this tag
    discriminator: Optional[Tuple[str, str]] = None


REFERENCES: Tuple[Reference, ...] = (
    Reference("Ward", "dept_name", "Department", CASCADE),
    Reference("Bed", "ward_id", "Ward", CASCADE),
    Reference("Staff", "dept_name", "Department", SET_NULL),
    Reference("Doctor", "doctor_id", "Staff", CASCADE, ("staff_type", "Doctor")),
    Reference("Nurse", "nurse_id", "Staff", CASCADE, ("staff_type", "Nurse")),
    Reference("DoctorSpecialty", "doctor_id", "Doctor", CASCADE),
    Reference("DoctorSpecialty", "specialty_name", "Specialty", CASCADE),
    Reference("Admission", "patient_id", "Patient", CASCADE),
    Reference("Admission", "nurse_id", "Nurse", SET_NULL),
    Reference("Admission", "doctor_id", "Doctor", SET_NULL),
    Reference("Admission", "bed_id", "Bed", SET_NULL),
    Reference("PlannedAdmission", "admission_id", "Admission", CASCADE, ("admission_type", "Planned")),
    Reference("EmergencyAdmission", "admission_id", "Admission", CASCADE, ("admission_type", "Emergency")),
    Reference("EmergencyAdmission", "triage_nurse_id", "Nurse", SET_NULL),
    Reference("BillingStatement", "admission_id", "Admission", CASCADE),
    Reference("Invoice", "billing_id", "BillingStatement", CASCADE),
    Reference("Payment", "invoice_id", "Invoice", CASCADE),
)


def outgoing(entity_type: str) -> List[Reference]:
    return [ref for ref in REFERENCES if ref.source == entity_type]


def incoming(entity_type: str) -> List[Reference]:
    return [ref for ref in REFERENCES if ref.target == entity_type]


def primary_key(entity_type: str, obj) -> Any:
    identity = inspect(obj).identity
    if identity is None:
        mapper = inspect(models.ENTITIES[entity_type])
        identity = tuple(getattr(obj, col.key) for col in mapper.primary_key)
    return identity[0] if len(identity) == 1 else tuple(identity)


def check_references(session: Session, entity_type: str, row: Dict[str, Any], old: Optional[Dict[str, Any]] = None) -> None:
    """Every non-null foreign key must resolve; tagged-variant targets must carry the matching tag."""
    for ref in outgoing(entity_type):
        value = row.get(ref.field)
        if value is None:
            continue
        if old is not None and old.get(ref.field) == value and ref.discriminator is None:
            continue
        target = session.get(models.ENTITIES[ref.target], value)
        if target is None:
            raise DanglingReference(entity_type, ref.field, value)
        if ref.discriminator:
            column, expected = ref.discriminator
            if getattr(target, column) != expected:
                raise ConstraintViolation(
                    ref.field,
                    f"{ref.target} {value!r} has {column}={getattr(target, column)!r}, expected {expected!r}",
                    entity_type,
                )


def check_discriminator_change(session: Session, entity_type: str, row: Dict[str, Any], old: Dict[str, Any]) -> None:
    """Changing staff_type / admission_type is refused while a detail row of the old variant exists."""
    for ref in incoming(entity_type):
        if ref.discriminator is None:
            continue
        column, expected = ref.discriminator
        if old.get(column) == expected and row.get(column) != expected:
            key = row[_target_key_field(entity_type)]
            if session.get(models.ENTITIES[ref.source], key) is not None:
                raise ConstraintViolation(
                    column, f"cannot change {column} while a {ref.source} record exists", entity_type
                )


def _target_key_field(entity_type: str) -> str:
    mapper = inspect(models.ENTITIES[entity_type])
    return mapper.primary_key[0].key


@dataclass
class DeletionPlan:
    """Rows to delete (children first) and surviving rows whose reference is cleared."""
    root: Tuple[str, Any]
    deletes: List[Tuple[str, Any]] = field(default_factory=list)
    nullify: List[Tuple[str, Any, str]] = field(default_factory=list)
    doomed: Set[Tuple[str, Any]] = field(default_factory=set)

    def is_doomed(self, entity_type: str, key: Any) -> bool:
        return (entity_type, key) in self.doomed


def plan_deletion(session: Session, entity_type: str, obj) -> DeletionPlan:
    root_key = primary_key(entity_type, obj)
    plan = DeletionPlan(root=(entity_type, root_key))
    _visit(session, entity_type, obj, plan)
    # A row that is itself deleted needs no SET NULL
    plan.nullify = [
        (etype, row, fld) for etype, row, fld in plan.nullify
        if not plan.is_doomed(etype, primary_key(etype, row))
    ]
    logger.info(
        f"Delete closure for {entity_type} {root_key!r}: "
        f"{len(plan.deletes)} row(s) deleted, {len(plan.nullify)} reference(s) cleared"
    )
    return plan


def _visit(session: Session, entity_type: str, obj, plan: DeletionPlan) -> None:
    key = (entity_type, primary_key(entity_type, obj))
    if key in plan.doomed:
        return
    plan.doomed.add(key)
    target_value = getattr(obj, _target_key_field(entity_type))
    for ref in incoming(entity_type):
        source_model = models.ENTITIES[ref.source]
        children = session.query(source_model).filter(getattr(source_model, ref.field) == target_value).all()
        for child in children:
            if ref.on_delete == CASCADE:
                _visit(session, ref.source, child, plan)
            else:
                plan.nullify.append((ref.source, child, ref.field))
    plan.deletes.append((entity_type, obj))
