"""
Prescription request models
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from medsafety.database.models import MedicationRoute, PrescriptionStatus


class PrescriptionCreate(BaseModel):
    """A prescribing request"""
    patient_id: str = Field(..., min_length=1)
    prescriber_id: str = Field(..., min_length=1)
    medication_id: Optional[str] = None
    medication_name: str = Field(..., min_length=1)
    strength: str
    dosage_form: str
    quantity: int = Field(..., gt=0)
    quantity_unit: str
    route: MedicationRoute
    frequency: str
    timing_instructions: Optional[str] = None
    duration_days: Optional[int] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    prn_reason: Optional[str] = None
    max_dose_per_period: Optional[str] = None
    refills_allowed: int = Field(0, ge=0)
    dispense_as_written: bool = False
    pharmacy_id: Optional[str] = None
    pharmacy_notes: Optional[str] = None
    allergies_noted: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    source: Optional[str] = None


class PrescriptionUpdate(BaseModel):
    """Patchable prescription fields; unset fields are left alone"""
    model_config = ConfigDict(extra="forbid")

    status: Optional[PrescriptionStatus] = None
    medication_id: Optional[str] = None
    medication_name: Optional[str] = Field(None, min_length=1)
    strength: Optional[str] = None
    dosage_form: Optional[str] = None
    quantity: Optional[int] = Field(None, gt=0)
    quantity_unit: Optional[str] = None
    route: Optional[MedicationRoute] = None
    frequency: Optional[str] = None
    timing_instructions: Optional[str] = None
    duration_days: Optional[int] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    prn_reason: Optional[str] = None
    max_dose_per_period: Optional[str] = None
    refills_allowed: Optional[int] = Field(None, ge=0)
    dispense_as_written: Optional[bool] = None
    pharmacy_id: Optional[str] = None
    pharmacy_notes: Optional[str] = None
    allergies_noted: Optional[List[str]] = None
    notes: Optional[str] = None
    source: Optional[str] = None


class PrescriptionFilter(BaseModel):
    patient_id: Optional[str] = None
    status: Optional[PrescriptionStatus] = None
    prescriber_id: Optional[str] = None


class ApproveRequest(BaseModel):
    approver_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)
