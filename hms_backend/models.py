# NOTE: SQLAlchemy models for the Central Hospital schema; CHECK constraints mirror the constraint engine
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

WARD_TYPES = ("General", "ICU")
BED_STATUSES = ("Available", "Occupied", "Maintenance", "Reserved")
STAFF_TYPES = ("Doctor", "Nurse", "Allied Health")
SPECIALTY_CATEGORIES = ("Surgical", "Medical", "Diagnostic", "Emergency", "Pediatric", "Other")
PROFICIENCY_LEVELS = ("Beginner", "Intermediate", "Advanced", "Expert")
BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")
ADMISSION_TYPES = ("Planned", "Emergency")
SEVERITY_LEVELS = ("Critical", "High", "Medium", "Low")
INVOICE_STATUSES = ("Unpaid", "Partially Paid", "Paid", "Overdue", "Cancelled")
PAYMENT_STATUSES = ("Pending", "Completed", "Failed", "Refunded")


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ========================================
# DEPARTMENT TABLES
# ========================================

class Department(Base):
    """Hospital department; staff_headcount is derived from Staff rows."""
    __tablename__ = "department"

    dept_name = Column(String(100), primary_key=True)
    operating_hours = Column(String(100), nullable=False)
    staff_headcount = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("staff_headcount >= 0", name="chk_department_headcount"),
    )


class Ward(Base):
    __tablename__ = "ward"

    ward_id = Column(Integer, primary_key=True, autoincrement=True)
    ward_name = Column(String(100), nullable=False)
    dept_name = Column(String(100), ForeignKey("department.dept_name", ondelete="CASCADE"), nullable=False, index=True)
    ward_type = Column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint(_in("ward_type", WARD_TYPES), name="chk_ward_type"),
    )


class Bed(Base):
    """Physical bed; status is kept in step with active admissions."""
    __tablename__ = "bed"

    bed_id = Column(Integer, primary_key=True, autoincrement=True)
    ward_id = Column(Integer, ForeignKey("ward.ward_id", ondelete="CASCADE"), nullable=False, index=True)
    bed_length = Column(Numeric(5, 2), nullable=False)
    bed_width = Column(Numeric(5, 2), nullable=False)
    mattress_thickness = Column(Numeric(5, 2), nullable=False)
    comfort_level = Column(String(50))
    bed_cost = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="Available")

    __table_args__ = (
        CheckConstraint("bed_length > 0 AND bed_length <= 2.13", name="chk_bed_length"),
        CheckConstraint("bed_width > 0 AND bed_width <= 1.27", name="chk_bed_width"),
        CheckConstraint("mattress_thickness >= 15.24 AND mattress_thickness <= 17.78", name="chk_bed_mattress"),
        CheckConstraint("bed_cost >= 0", name="chk_bed_cost"),
        CheckConstraint(_in("status", BED_STATUSES), name="chk_bed_status"),
    )


# ========================================
# STAFF TABLES
# ========================================

class Staff(Base):
    """Base personnel record; staff_type selects the Doctor/Nurse detail row."""
    __tablename__ = "staff"

    staff_id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(255), nullable=False)
    mobile = Column(String(20), nullable=False)
    address = Column(String(255), nullable=False)
    salary = Column(Numeric(10, 2), nullable=False)
    dept_name = Column(String(100), ForeignKey("department.dept_name", ondelete="SET NULL"), index=True)
    staff_type = Column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint("salary > 0", name="chk_staff_salary"),
        CheckConstraint(_in("staff_type", STAFF_TYPES), name="chk_staff_type"),
    )


class Doctor(Base):
    __tablename__ = "doctor"

    doctor_id = Column(Integer, ForeignKey("staff.staff_id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    license_number = Column(String(50))
    license_expiry = Column(Date)

    __table_args__ = (
        CheckConstraint(
            "(license_number IS NULL) = (license_expiry IS NULL)", name="chk_doctor_license_pair"
        ),
    )


class Nurse(Base):
    __tablename__ = "nurse"

    nurse_id = Column(Integer, ForeignKey("staff.staff_id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    wwcc_clearance = Column(Boolean, nullable=False, default=False)
    wwcc_expiry_date = Column(Date)

    __table_args__ = (
        CheckConstraint(
            "wwcc_clearance = false OR wwcc_expiry_date IS NOT NULL", name="chk_nurse_wwcc"
        ),
    )


class Specialty(Base):
    __tablename__ = "specialty"

    specialty_name = Column(String(100), primary_key=True)
    category = Column(String(20), nullable=False, default="Other")

    __table_args__ = (
        CheckConstraint(_in("category", SPECIALTY_CATEGORIES), name="chk_specialty_category"),
    )


class DoctorSpecialty(Base):
    """Doctor x Specialty join; each doctor keeps between 1 and 5 rows."""
    __tablename__ = "doctor_specialty"

    doctor_id = Column(Integer, ForeignKey("doctor.doctor_id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    specialty_name = Column(String(100), ForeignKey("specialty.specialty_name", ondelete="CASCADE"), primary_key=True)
    training_date = Column(Date, nullable=False)
    proficiency_level = Column(String(20), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(_in("proficiency_level", PROFICIENCY_LEVELS), name="chk_doctor_specialty_proficiency"),
        Index("idx_doctor_specialty_specialty", "specialty_name"),
    )


# ========================================
# PATIENT TABLES
# ========================================

class Patient(Base):
    __tablename__ = "patient"

    patient_id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    address = Column(String(255), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    mobile = Column(String(20), nullable=False)
    emergency_contact_name = Column(String(255), nullable=False)
    emergency_contact_phone = Column(String(20), nullable=False)
    insurance_number = Column(String(100), nullable=False)
    blood_type = Column(String(3))
    allergies = Column(Text)

    __table_args__ = (
        CheckConstraint(_in("blood_type", BLOOD_TYPES) + " OR blood_type IS NULL", name="chk_patient_blood_type"),
    )


class Admission(Base):
    """Hospital stay; admission_type selects the Planned/Emergency detail row."""
    __tablename__ = "admission"

    admission_id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patient.patient_id", ondelete="CASCADE"), nullable=False, index=True)
    admission_date = Column(DateTime, nullable=False)
    admission_type = Column(String(20), nullable=False)
    nurse_id = Column(Integer, ForeignKey("nurse.nurse_id", ondelete="SET NULL"))
    doctor_id = Column(Integer, ForeignKey("doctor.doctor_id", ondelete="SET NULL"))
    bed_id = Column(Integer, ForeignKey("bed.bed_id", ondelete="SET NULL"))
    discharge_date = Column(Date)

    __table_args__ = (
        CheckConstraint(_in("admission_type", ADMISSION_TYPES), name="chk_admission_type"),
        # At most one active admission per bed
        Index(
            "uq_admission_active_bed", "bed_id", unique=True,
            postgresql_where=text("discharge_date IS NULL AND bed_id IS NOT NULL"),
            sqlite_where=text("discharge_date IS NULL AND bed_id IS NOT NULL"),
        ),
    )


class PlannedAdmission(Base):
    __tablename__ = "planned_admission"

    admission_id = Column(Integer, ForeignKey("admission.admission_id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    referring_practitioner = Column(String(255), nullable=False)
    reference_number = Column(String(100), nullable=False, unique=True)


class EmergencyAdmission(Base):
    __tablename__ = "emergency_admission"

    admission_id = Column(Integer, ForeignKey("admission.admission_id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    triage_nurse_id = Column(Integer, ForeignKey("nurse.nurse_id", ondelete="SET NULL"))
    patient_condition = Column(String(500))
    severity_level = Column(String(20))

    __table_args__ = (
        CheckConstraint(
            _in("severity_level", SEVERITY_LEVELS) + " OR severity_level IS NULL", name="chk_emergency_severity"
        ),
    )


# ========================================
# BILLING TABLES
# ========================================

class BillingStatement(Base):
    """One statement per admission; remaining_balance is derived on every write."""
    __tablename__ = "billing_statement"

    billing_id = Column(Integer, primary_key=True, autoincrement=True)
    admission_id = Column(Integer, ForeignKey("admission.admission_id", ondelete="CASCADE"), nullable=False, unique=True)
    discharge_date = Column(Date, nullable=False)
    services_description = Column(Text)
    total_cost = Column(Numeric(10, 2), nullable=False)
    insurance_covered_amount = Column(Numeric(10, 2), nullable=False)
    remaining_balance = Column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("total_cost > 0 AND total_cost <= 50000", name="chk_billing_total_cost"),
        CheckConstraint("insurance_covered_amount >= 0", name="chk_billing_insurance_positive"),
        CheckConstraint("insurance_covered_amount <= total_cost", name="chk_billing_insurance_le_total"),
    )


class Invoice(Base):
    __tablename__ = "invoice"

    invoice_id = Column(Integer, primary_key=True, autoincrement=True)
    billing_id = Column(Integer, ForeignKey("billing_statement.billing_id", ondelete="CASCADE"), nullable=False, index=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date)
    amount_due = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(String(20), nullable=False, default="Unpaid")

    __table_args__ = (
        CheckConstraint("amount_due >= 0", name="chk_invoice_amount_due"),
        CheckConstraint("due_date IS NULL OR due_date >= issue_date", name="chk_invoice_due_date"),
        CheckConstraint(_in("payment_status", INVOICE_STATUSES), name="chk_invoice_payment_status"),
    )


class Payment(Base):
    """Card payment against an invoice; only the last four card digits are stored."""
    __tablename__ = "payment"

    payment_id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoice.invoice_id", ondelete="CASCADE"), nullable=False, index=True)
    cardholder_name = Column(String(255), nullable=False)
    card_last_four = Column(String(4), nullable=False)
    card_expiry_date = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_amount = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(String(20), nullable=False, default="Pending")

    __table_args__ = (
        CheckConstraint("payment_amount > 0", name="chk_payment_amount"),
        CheckConstraint("length(card_last_four) = 4", name="chk_payment_card_last_four"),
        CheckConstraint(_in("payment_status", PAYMENT_STATUSES), name="chk_payment_status"),
    )


# Entity name -> model, in dependency order (parents before children)
ENTITIES = {
    model.__name__: model
    for model in (
        Department, Ward, Bed, Staff, Doctor, Nurse, Specialty, DoctorSpecialty,
        Patient, Admission, PlannedAdmission, EmergencyAdmission,
        BillingStatement, Invoice, Payment,
    )
}

