"""
Allergy registry request models
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from medsafety.database.models import AllergySeverity, AllergyStatus


class AllergyCreate(BaseModel):
    patient_id: str = Field(..., min_length=1)
    substance: str = Field(..., min_length=1)
    substance_class: Optional[str] = None
    severity: AllergySeverity = AllergySeverity.UNKNOWN
    status: AllergyStatus = AllergyStatus.ACTIVE
    reaction: Optional[str] = None
    onset_date: Optional[datetime] = None
    notes: Optional[str] = None
    source: Optional[str] = None


class AllergyUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    substance: Optional[str] = Field(None, min_length=1)
    substance_class: Optional[str] = None
    severity: Optional[AllergySeverity] = None
    status: Optional[AllergyStatus] = None
    reaction: Optional[str] = None
    onset_date: Optional[datetime] = None
    notes: Optional[str] = None
    source: Optional[str] = None


class AllergyFilter(BaseModel):
    patient_id: Optional[str] = None
    status: Optional[AllergyStatus] = None
