"""
Bulk loading: the Central Hospital sample data set and CSV imports.
Everything goes through the entity store, so loaded rows obey the same rules as API writes.
"""

import io
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd
from sqlalchemy import inspect, text

from hms_backend import models
from hms_backend.exceptions import NotFound

logger = logging.getLogger(__name__)

# Sample clearances stay valid relative to the loading clock
WWCC_VALIDITY = timedelta(days=3 * 365)

SAMPLE_DATA: Dict[str, List[Dict[str, Any]]] = {
    "Department": [
        {"dept_name": "General", "operating_hours": "10:00 AM - 8:00 PM"},
        {"dept_name": "Emergency Department", "operating_hours": "24 Hours"},
        {"dept_name": "Pediatrics", "operating_hours": "10:00 AM - 8:00 PM"},
        {"dept_name": "Surgery", "operating_hours": "8:00 AM - 6:00 PM"},
    ],
    "Ward": [
        {"ward_id": 1, "ward_name": "General Ward A", "dept_name": "General", "ward_type": "General"},
        {"ward_id": 2, "ward_name": "Pediatric ICU", "dept_name": "Pediatrics", "ward_type": "ICU"},
        {"ward_id": 3, "ward_name": "Emergency Ward", "dept_name": "Emergency Department", "ward_type": "General"},
    ],
    "Bed": [
        {"bed_id": 1, "ward_id": 1, "bed_length": "2.00", "bed_width": "1.00", "mattress_thickness": "16.00",
         "comfort_level": "Standard", "bed_cost": "50.00"},
        {"bed_id": 2, "ward_id": 2, "bed_length": "2.10", "bed_width": "1.20", "mattress_thickness": "17.50",
         "comfort_level": "Premium", "bed_cost": "150.00"},
        {"bed_id": 3, "ward_id": 3, "bed_length": "2.05", "bed_width": "1.10", "mattress_thickness": "16.50",
         "comfort_level": "Standard", "bed_cost": "75.00"},
    ],
    "Staff": [
        {"staff_id": 1, "full_name": "Dr. Sarah Johnson", "mobile": "0412345678",
         "address": "123 Medical St, Sydney NSW 2000", "salary": "180000.00", "dept_name": "General",
         "staff_type": "Doctor"},
        {"staff_id": 2, "full_name": "Nurse Emily Chen", "mobile": "0423456789",
         "address": "456 Care Ave, Sydney NSW 2000", "salary": "85000.00", "dept_name": "Emergency Department",
         "staff_type": "Nurse"},
        {"staff_id": 3, "full_name": "Dr. Michael Wong", "mobile": "0434567890",
         "address": "789 Health Rd, Sydney NSW 2000", "salary": "195000.00", "dept_name": "Pediatrics",
         "staff_type": "Doctor"},
        {"staff_id": 4, "full_name": "Nurse Lisa Brown", "mobile": "0445678901",
         "address": "321 Nurse Lane, Sydney NSW 2000", "salary": "88000.00", "dept_name": "Pediatrics",
         "staff_type": "Nurse"},
    ],
    "Doctor": [{"doctor_id": 1}, {"doctor_id": 3}],
    "Specialty": [
        {"specialty_name": "General Medicine", "category": "Medical"},
        {"specialty_name": "Pediatrics", "category": "Pediatric"},
        {"specialty_name": "Emergency Medicine", "category": "Emergency"},
    ],
    "DoctorSpecialty": [
        {"doctor_id": 1, "specialty_name": "General Medicine", "training_date": "2015-06-15",
         "proficiency_level": "Expert", "is_primary": True},
        {"doctor_id": 3, "specialty_name": "Pediatrics", "training_date": "2016-08-20",
         "proficiency_level": "Expert", "is_primary": True},
    ],
    "Nurse": [
        {"nurse_id": 2, "wwcc_clearance": False},
        {"nurse_id": 4, "wwcc_clearance": True, "wwcc_expiry_date": lambda today: today + WWCC_VALIDITY},
    ],
    "Patient": [
        {"patient_id": 1, "full_name": "John Smith", "email": "john.smith@email.com",
         "address": "10 Patient St, Sydney NSW 2000", "date_of_birth": "1985-03-15", "mobile": "0456789012",
         "emergency_contact_name": "Jane Smith", "emergency_contact_phone": "0467890123",
         "insurance_number": "INS123456", "blood_type": "O+"},
        {"patient_id": 2, "full_name": "Emma Wilson", "email": "emma.wilson@email.com",
         "address": "20 Family Ave, Sydney NSW 2000", "date_of_birth": "1990-07-22", "mobile": "0478901234",
         "emergency_contact_name": "Robert Wilson", "emergency_contact_phone": "0489012345",
         "insurance_number": "INS789012", "blood_type": "A-", "allergies": "Penicillin"},
        {"patient_id": 3, "full_name": "Oliver Taylor", "email": "oliver.taylor@email.com",
         "address": "30 Child Rd, Sydney NSW 2000", "date_of_birth": "2015-11-10", "mobile": "0490123456",
         "emergency_contact_name": "Sophie Taylor", "emergency_contact_phone": "0401234567",
         "insurance_number": "INS345678"},
    ],
    "Admission": [
        {"admission_id": 1, "patient_id": 1, "admission_date": "2024-08-01 10:30:00", "admission_type": "Planned",
         "nurse_id": 2, "doctor_id": 1, "bed_id": 1, "discharge_date": "2024-08-05"},
        {"admission_id": 2, "patient_id": 2, "admission_date": "2024-08-15 02:45:00", "admission_type": "Emergency",
         "nurse_id": 2, "doctor_id": 1, "bed_id": 3, "discharge_date": "2024-08-18"},
        {"admission_id": 3, "patient_id": 3, "admission_date": "2024-08-20 14:00:00", "admission_type": "Planned",
         "nurse_id": 4, "doctor_id": 3, "bed_id": 2},
    ],
    "PlannedAdmission": [
        {"admission_id": 1, "referring_practitioner": "Dr. Peter Anderson", "reference_number": "REF2024001"},
        {"admission_id": 3, "referring_practitioner": "Dr. Mary Thompson", "reference_number": "REF2024003"},
    ],
    "EmergencyAdmission": [
        {"admission_id": 2, "triage_nurse_id": 2, "patient_condition": "Chest pain and shortness of breath",
         "severity_level": "Critical"},
    ],
    "BillingStatement": [
        {"billing_id": 1, "admission_id": 1, "discharge_date": "2024-08-05",
         "services_description": "General consultation, blood tests, 4-day hospital stay",
         "total_cost": "3500.00", "insurance_covered_amount": "2800.00"},
        {"billing_id": 2, "admission_id": 2, "discharge_date": "2024-08-18",
         "services_description": "Emergency care, ECG, cardiac monitoring, 3-day ICU stay",
         "total_cost": "8500.00", "insurance_covered_amount": "7000.00"},
    ],
    "Invoice": [
        {"invoice_id": 1, "billing_id": 1, "issue_date": "2024-08-06", "due_date": "2024-09-05",
         "amount_due": "700.00", "payment_status": "Paid"},
        {"invoice_id": 2, "billing_id": 2, "issue_date": "2024-08-19", "due_date": "2024-09-18",
         "amount_due": "1500.00", "payment_status": "Paid"},
    ],
    "Payment": [
        {"payment_id": 1, "invoice_id": 1, "cardholder_name": "John Smith", "card_number": "4532123456789012",
         "card_expiry_date": "2026-12-31", "cvv": "123", "payment_date": "2024-08-10",
         "payment_amount": "700.00", "payment_status": "Completed"},
        {"payment_id": 2, "invoice_id": 2, "cardholder_name": "Emma Wilson", "card_number": "5412345678901234",
         "card_expiry_date": "2027-06-30", "cvv": "456", "payment_date": "2024-08-22",
         "payment_amount": "1500.00", "payment_status": "Completed"},
    ],
}


def load_sample_data(store) -> Dict[str, int]:
    """
    Insert the sample data set in one transaction; returns rows loaded per entity.
    Callable values are resolved against the store clock.
    """
    counts = {}
    with store.transaction() as uow:
        for entity_type, rows in SAMPLE_DATA.items():
            for row in rows:
                uow.create(entity_type, {k: v(uow.today) if callable(v) else v for k, v in row.items()})
            counts[entity_type] = len(rows)
        _sync_sequences(uow.session)
    logger.info(f"Loaded sample data: {sum(counts.values())} rows across {len(counts)} tables")
    return counts


def _sync_sequences(session) -> None:
    """Move PostgreSQL serial sequences past explicitly inserted ids."""
    if session.get_bind().dialect.name != "postgresql":
        return
    for model in models.ENTITIES.values():
        for column in model.__table__.primary_key.columns:
            if column.autoincrement is True:
                table = model.__tablename__
                session.execute(text(
                    f"SELECT setval(pg_get_serial_sequence('{table}', '{column.name}'), "
                    f"COALESCE((SELECT MAX({column.name}) FROM {table}), 0) + 1, false)"
                ))


def _frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def load_csv(store, entity_type: str, source: Union[str, Path, bytes]) -> int:
    """
    Load one CSV of entity_type rows through the entity store.
    All rows commit together or none do. Returns the number of rows inserted.
    """
    model = models.ENTITIES.get(entity_type)
    if model is None:
        raise NotFound("entity type", entity_type)

    if isinstance(source, bytes):
        df = pd.read_csv(io.BytesIO(source), dtype=str, keep_default_na=False, na_values=[""])
    else:
        df = pd.read_csv(source, dtype=str, keep_default_na=False, na_values=[""])
    logger.info(f"Loading {len(df)} {entity_type} records")

    # Validate required columns
    required_cols = [
        column.name for column in model.__table__.columns
        if not column.nullable and column.default is None and column.autoincrement is not True
        and column.name != "remaining_balance"
    ]
    if entity_type == "Payment" and "card_number" in df.columns:
        required_cols = [c for c in required_cols if c != "card_last_four"]
    if entity_type == "Invoice":
        required_cols = [c for c in required_cols if c != "issue_date"]
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    # Clean string fields
    for column in df.columns:
        df[column] = df[column].str.strip()

    # Remove duplicate keys within the file
    key_cols = [col.key for col in inspect(model).primary_key if col.key in df.columns]
    if key_cols:
        before = len(df)
        df = df.drop_duplicates(subset=key_cols)
        if len(df) < before:
            logger.warning(f"Dropped {before - len(df)} duplicate {entity_type} rows")

    records = _frame_records(df)
    with store.transaction() as uow:
        for record in records:
            uow.create(entity_type, record)
    logger.info(f"Successfully loaded {len(records)} {entity_type} records")
    return len(records)
