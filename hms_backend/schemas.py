"""
Pydantic request models for the composite operations.

Staff and Admission are tagged variants: the role / details payload carries
its discriminator and only the fields of that variant.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SpecialtyAssignment(BaseModel):
    specialty_name: str
    training_date: date
    proficiency_level: Literal["Beginner", "Intermediate", "Advanced", "Expert"]
    is_primary: bool = False


class DoctorRole(BaseModel):
    staff_type: Literal["Doctor"] = "Doctor"
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    specialties: List[SpecialtyAssignment] = Field(..., min_length=1, max_length=5)


class NurseRole(BaseModel):
    staff_type: Literal["Nurse"] = "Nurse"
    wwcc_clearance: bool = False
    wwcc_expiry_date: Optional[date] = None


class AlliedHealthRole(BaseModel):
    staff_type: Literal["Allied Health"] = "Allied Health"


StaffRole = Annotated[Union[DoctorRole, NurseRole, AlliedHealthRole], Field(discriminator="staff_type")]


class StaffCreate(BaseModel):
    full_name: str
    mobile: str
    address: str
    salary: Decimal
    dept_name: Optional[str] = None
    role: StaffRole


class PlannedDetails(BaseModel):
    admission_type: Literal["Planned"] = "Planned"
    referring_practitioner: str
    reference_number: str


class EmergencyDetails(BaseModel):
    admission_type: Literal["Emergency"] = "Emergency"
    triage_nurse_id: Optional[int] = None
    patient_condition: Optional[str] = None
    severity_level: Optional[Literal["Critical", "High", "Medium", "Low"]] = None


AdmissionDetails = Annotated[Union[PlannedDetails, EmergencyDetails], Field(discriminator="admission_type")]


class AdmissionCreate(BaseModel):
    patient_id: int
    admission_date: datetime
    nurse_id: Optional[int] = None
    doctor_id: Optional[int] = None
    bed_id: Optional[int] = None
    discharge_date: Optional[date] = None
    details: AdmissionDetails


class DischargeRequest(BaseModel):
    discharge_date: date


class ErrorResponse(BaseModel):
    error: str
    detail: str
    context: Dict[str, Any] = {}
