"""
Drug Interaction Alert API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from medsafety.api.dependencies import get_current_user_id
from medsafety.database import get_db, AlertStatus, InteractionType, InteractionSeverity
from medsafety.models import InteractionCheckRequest, AlertFilter, OverrideRequest, ResolveRequest
from medsafety.services.alert_service import get_alert_service
from medsafety.services.drug_interaction_service import get_drug_interaction_service

router = APIRouter(prefix="/api/drug-interaction-alerts", tags=["Drug Interaction Alerts"])


@router.post("/check")
def check_interactions(request: InteractionCheckRequest, db: Session = Depends(get_db)):
    """
    Check a medication for a patient without prescribing it.

    Findings are recorded as alerts exactly as they would be for a real
    prescription.
    """
    result = get_drug_interaction_service().check_interactions(
        db,
        patient_id=request.patient_id,
        medication_name=request.medication_name,
        medication_id=request.medication_id
    )
    return result.to_dict()


@router.get("")
def list_alerts(
    patient_id: Optional[str] = None,
    status: Optional[AlertStatus] = None,
    interaction_type: Optional[InteractionType] = None,
    severity: Optional[InteractionSeverity] = None,
    db: Session = Depends(get_db)
):
    filters = AlertFilter(
        patient_id=patient_id,
        status=status,
        interaction_type=interaction_type,
        severity=severity
    )
    alerts = get_alert_service().list(db, filters)
    return {
        "count": len(alerts),
        "alerts": [a.to_dict() for a in alerts]
    }


@router.get("/{alert_id}")
def get_alert(alert_id: str, db: Session = Depends(get_db)):
    return get_alert_service().get(db, alert_id).to_dict()


@router.patch("/{alert_id}/override")
def override_alert(
    alert_id: str,
    request: OverrideRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Clinician override; the finding no longer blocks prescribing"""
    alert = get_alert_service().override(db, alert_id, overridden_by=user_id, reason=request.reason)
    return alert.to_dict()


@router.patch("/{alert_id}/acknowledge")
def acknowledge_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    alert = get_alert_service().acknowledge(db, alert_id, acknowledged_by=user_id)
    return alert.to_dict()


@router.patch("/{alert_id}/resolve")
def resolve_alert(
    alert_id: str,
    request: Optional[ResolveRequest] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    note = request.note if request else None
    alert = get_alert_service().resolve(db, alert_id, resolved_by=user_id, note=note)
    return alert.to_dict()
