"""
Constraint engine: field-level and same-row checks run before a row is admitted.

Every check is a pure function of the candidate row (plus the store's notion of
"today" for expiry rules). Rules that need other rows live in the reactive rule
modules instead.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String

from hms_backend.exceptions import ConstraintViolation
from hms_backend import models

Row = Dict[str, Any]

MAX_TOTAL_COST = Decimal("50000")
TWO_PLACES = Decimal("0.01")
TRUE_WORDS = ("true", "t", "yes", "y", "1")
FALSE_WORDS = ("false", "f", "no", "n", "0")


def to_decimal(value: Any) -> Decimal:
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"{value!r} is not a finite amount")
    return amount.quantize(TWO_PLACES)


def to_int(value: Any) -> int:
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not a whole number")
    if isinstance(value, Decimal) and (not value.is_finite() or value != value.to_integral_value()):
        raise ValueError(f"{value!r} is not a whole number")
    return int(value)


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
        raise ValueError(f"{value!r} is not a boolean")
    return bool(value)


def _coerce(column, value: Any) -> Any:
    column_type = column.type
    if value is None:
        return None
    if isinstance(value, str) and not value.strip() and not isinstance(column_type, String):
        return None
    if isinstance(column_type, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        return datetime.fromisoformat(str(value))
    if isinstance(column_type, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])
    if isinstance(column_type, Numeric):
        return to_decimal(value)
    if isinstance(column_type, Boolean):
        return to_bool(value)
    if isinstance(column_type, Integer):
        return to_int(value)
    return value


def coerce_row(entity_type: str, values: Row) -> Row:
    """Convert raw input (ISO strings, floats, ...) into column Python types; reject unknown fields."""
    table = models.ENTITIES[entity_type].__table__
    row = {}
    for field, value in values.items():
        if field not in table.columns:
            raise ConstraintViolation(field, "unknown field", entity_type)
        try:
            row[field] = _coerce(table.columns[field], value)
        except (ValueError, TypeError, InvalidOperation):
            raise ConstraintViolation(field, f"invalid value {value!r}", entity_type)
    return row


def apply_defaults(entity_type: str, row: Row) -> Row:
    """Fill scalar column defaults and None for absent columns."""
    table = models.ENTITIES[entity_type].__table__
    full = {}
    for column in table.columns:
        if column.name in row:
            full[column.name] = row[column.name]
        elif column.default is not None and column.default.is_scalar:
            full[column.name] = column.default.arg
        else:
            full[column.name] = None
    return full


# ========================================
# Rule helpers
# ========================================

def _require(row: Row, *fields: str) -> None:
    for field in fields:
        value = row.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConstraintViolation(field, "is required")


def _one_of(row: Row, field: str, allowed, optional: bool = False) -> None:
    value = row.get(field)
    if value is None and optional:
        return
    if value not in allowed:
        raise ConstraintViolation(field, f"must be one of {', '.join(allowed)}")


def _in_range(row: Row, field: str, low, high, low_open: bool, label: str) -> None:
    value = row.get(field)
    if value is None:
        return
    too_low = value <= low if low_open else value < low
    if too_low or value > high:
        raise ConstraintViolation(field, f"{field} must be in {label}")


# ========================================
# Per-entity rules
# ========================================

def _check_department(row: Row, today: date) -> None:
    _require(row, "dept_name", "operating_hours")
    if row.get("staff_headcount") is not None and row["staff_headcount"] < 0:
        raise ConstraintViolation("staff_headcount", "staff_headcount must be >= 0")


def _check_ward(row: Row, today: date) -> None:
    _require(row, "ward_name", "dept_name", "ward_type")
    _one_of(row, "ward_type", models.WARD_TYPES)


def _check_bed(row: Row, today: date) -> None:
    _require(row, "ward_id", "bed_length", "bed_width", "mattress_thickness", "bed_cost")
    _in_range(row, "bed_length", Decimal("0"), Decimal("2.13"), True, "(0, 2.13]")
    _in_range(row, "bed_width", Decimal("0"), Decimal("1.27"), True, "(0, 1.27]")
    _in_range(row, "mattress_thickness", Decimal("15.24"), Decimal("17.78"), False, "[15.24, 17.78]")
    if row["bed_cost"] < 0:
        raise ConstraintViolation("bed_cost", "bed_cost must be >= 0")
    _one_of(row, "status", models.BED_STATUSES)


def _check_staff(row: Row, today: date) -> None:
    _require(row, "full_name", "mobile", "address", "salary", "staff_type")
    if row["salary"] <= 0:
        raise ConstraintViolation("salary", "salary must be > 0")
    _one_of(row, "staff_type", models.STAFF_TYPES)


def _check_doctor(row: Row, today: date) -> None:
    _require(row, "doctor_id")
    has_number = bool(row.get("license_number"))
    has_expiry = row.get("license_expiry") is not None
    if has_number != has_expiry:
        raise ConstraintViolation("license_expiry", "license_number and license_expiry must be given together")
    if has_expiry and row["license_expiry"] <= today:
        raise ConstraintViolation("license_expiry", "license_expiry must be in the future")


def _check_nurse(row: Row, today: date) -> None:
    _require(row, "nurse_id")
    if row.get("wwcc_clearance"):
        if row.get("wwcc_expiry_date") is None:
            raise ConstraintViolation("wwcc_expiry_date", "wwcc_expiry_date is required when wwcc_clearance is true")
        if row["wwcc_expiry_date"] <= today:
            raise ConstraintViolation("wwcc_expiry_date", "wwcc_expiry_date must be in the future")


def _check_specialty(row: Row, today: date) -> None:
    _require(row, "specialty_name", "category")
    _one_of(row, "category", models.SPECIALTY_CATEGORIES)


def _check_doctor_specialty(row: Row, today: date) -> None:
    _require(row, "doctor_id", "specialty_name", "training_date", "proficiency_level")
    _one_of(row, "proficiency_level", models.PROFICIENCY_LEVELS)


def _check_patient(row: Row, today: date) -> None:
    _require(
        row, "full_name", "email", "address", "date_of_birth", "mobile",
        "emergency_contact_name", "emergency_contact_phone", "insurance_number",
    )
    if "@" not in row["email"]:
        raise ConstraintViolation("email", "email must contain '@'")
    if row["date_of_birth"] > today:
        raise ConstraintViolation("date_of_birth", "date_of_birth cannot be in the future")
    _one_of(row, "blood_type", models.BLOOD_TYPES, optional=True)


def _check_admission(row: Row, today: date) -> None:
    _require(row, "patient_id", "admission_date", "admission_type")
    _one_of(row, "admission_type", models.ADMISSION_TYPES)
    discharge = row.get("discharge_date")
    if discharge is not None and discharge < row["admission_date"].date():
        raise ConstraintViolation("discharge_date", "discharge_date must be on or after admission_date")


def _check_planned_admission(row: Row, today: date) -> None:
    _require(row, "admission_id", "referring_practitioner", "reference_number")


def _check_emergency_admission(row: Row, today: date) -> None:
    _require(row, "admission_id")
    _one_of(row, "severity_level", models.SEVERITY_LEVELS, optional=True)


def _check_billing_statement(row: Row, today: date) -> None:
    _require(row, "admission_id", "discharge_date", "total_cost", "insurance_covered_amount")
    _in_range(row, "total_cost", Decimal("0"), MAX_TOTAL_COST, True, "(0, 50000]")
    if row["insurance_covered_amount"] < 0:
        raise ConstraintViolation("insurance_covered_amount", "insurance_covered_amount must be >= 0")
    if row["insurance_covered_amount"] > row["total_cost"]:
        raise ConstraintViolation("insurance_covered_amount", "insurance_covered_amount must not exceed total_cost")


def _check_invoice(row: Row, today: date) -> None:
    _require(row, "billing_id", "issue_date", "amount_due")
    if row["amount_due"] < 0:
        raise ConstraintViolation("amount_due", "amount_due must be >= 0")
    if row.get("due_date") is not None and row["due_date"] < row["issue_date"]:
        raise ConstraintViolation("due_date", "due_date must be on or after issue_date")
    _one_of(row, "payment_status", models.INVOICE_STATUSES)


def _check_payment(row: Row, today: date) -> None:
    _require(row, "invoice_id", "cardholder_name", "card_last_four", "card_expiry_date", "payment_date", "payment_amount")
    last_four = row["card_last_four"]
    if len(last_four) != 4 or not last_four.isdigit():
        raise ConstraintViolation("card_last_four", "card_last_four must be exactly 4 digits")
    if row["payment_amount"] <= 0:
        raise ConstraintViolation("payment_amount", "payment_amount must be > 0")
    _one_of(row, "payment_status", models.PAYMENT_STATUSES)


RULES: Dict[str, Callable[[Row, date], None]] = {
    "Department": _check_department,
    "Ward": _check_ward,
    "Bed": _check_bed,
    "Staff": _check_staff,
    "Doctor": _check_doctor,
    "Nurse": _check_nurse,
    "Specialty": _check_specialty,
    "DoctorSpecialty": _check_doctor_specialty,
    "Patient": _check_patient,
    "Admission": _check_admission,
    "PlannedAdmission": _check_planned_admission,
    "EmergencyAdmission": _check_emergency_admission,
    "BillingStatement": _check_billing_statement,
    "Invoice": _check_invoice,
    "Payment": _check_payment,
}


def validate(entity_type: str, row: Row, today: Optional[date] = None) -> None:
    """Raise ConstraintViolation (tagged with the entity) for the first rule the row breaks."""
    try:
        RULES[entity_type](row, today or date.today())
    except ConstraintViolation as e:
        if e.entity is None:
            raise ConstraintViolation(e.field, e.rule, entity_type) from None
        raise
