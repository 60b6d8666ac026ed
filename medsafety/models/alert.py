"""
Interaction alert request models
"""
from typing import Optional

from pydantic import BaseModel, Field

from medsafety.database.models import AlertStatus, InteractionSeverity, InteractionType


class InteractionCheckRequest(BaseModel):
    patient_id: str = Field(..., min_length=1)
    medication_name: str = Field(..., min_length=1)
    medication_id: Optional[str] = None


class AlertFilter(BaseModel):
    patient_id: Optional[str] = None
    status: Optional[AlertStatus] = None
    interaction_type: Optional[InteractionType] = None
    severity: Optional[InteractionSeverity] = None


class OverrideRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ResolveRequest(BaseModel):
    note: Optional[str] = None
