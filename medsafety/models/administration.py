"""
Medication administration request models
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AdministrationCreate(BaseModel):
    prescription_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)
    administered_at: datetime = Field(default_factory=datetime.utcnow)
    administered_dose: str = Field(..., min_length=1)
    administered_by: Optional[str] = None  # defaults to the acting user
    notes: Optional[str] = None
    was_refused: bool = False
    refusal_reason: Optional[str] = None
    was_omitted: bool = False
    omission_reason: Optional[str] = None
    patient_response: Optional[str] = None
    adverse_reaction: Optional[str] = None


class AdministrationUpdate(BaseModel):
    """
    Corrections to a recorded administration.

    prescription_id and patient_id are accepted only so that an attempt to
    re-point the record can be rejected explicitly.
    """
    model_config = ConfigDict(extra="forbid")

    prescription_id: Optional[str] = None
    patient_id: Optional[str] = None
    administered_at: Optional[datetime] = None
    notes: Optional[str] = None
    was_refused: Optional[bool] = None
    refusal_reason: Optional[str] = None
    was_omitted: Optional[bool] = None
    omission_reason: Optional[str] = None
    patient_response: Optional[str] = None
    adverse_reaction: Optional[str] = None


class AdministrationFilter(BaseModel):
    patient_id: Optional[str] = None
    prescription_id: Optional[str] = None
