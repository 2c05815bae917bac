# NOTE: Error taxonomy for the hospital data layer. Every error is local and recoverable by the caller.
from typing import Any, Optional


class HospitalDataError(RuntimeError):
    """Base class for every rejected mutation or failed lookup."""


class ConstraintViolation(HospitalDataError):
    def __init__(self, field: str, rule: str, entity: Optional[str] = None):
        self.field = field
        self.rule = rule
        self.entity = entity
        prefix = f"{entity}." if entity else ""
        super().__init__(f"{prefix}{field}: {rule}")


class DanglingReference(HospitalDataError):
    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity}.{field} references missing row {value!r}")


class NotFound(HospitalDataError):
    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class DuplicateKey(HospitalDataError):
    def __init__(self, entity: str, key: Any, field: Optional[str] = None):
        self.entity = entity
        self.key = key
        self.field = field
        what = f" ({field})" if field else ""
        super().__init__(f"{entity}{what} {key!r} already exists")


class TooManySpecialties(HospitalDataError):
    def __init__(self, doctor_id: int, count: int):
        self.doctor_id = doctor_id
        self.count = count
        super().__init__(f"Doctor {doctor_id} would have {count} specialties (maximum 5)")


class MinimumSpecialtyViolation(HospitalDataError):
    def __init__(self, doctor_id: int, count: int = 0):
        self.doctor_id = doctor_id
        self.count = count
        super().__init__(f"Doctor {doctor_id} must keep at least 1 specialty")


class CascadeFailure(HospitalDataError):
    """Raised when a row inside a delete closure cannot be removed; the whole closure is rolled back."""

    def __init__(self, entity: str, key: Any, reason: str):
        self.entity = entity
        self.key = key
        self.reason = reason
        super().__init__(f"Cascade delete of {entity} {key!r} failed: {reason}")
