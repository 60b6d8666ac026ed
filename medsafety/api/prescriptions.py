"""
Prescription API Routes - Prescription lifecycle
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from medsafety.api.dependencies import get_current_user_id
from medsafety.database import get_db, PrescriptionStatus
from medsafety.models import (
    PrescriptionCreate, PrescriptionUpdate, PrescriptionFilter, ApproveRequest, CancelRequest
)
from medsafety.services.administration_service import get_administration_service
from medsafety.services.alert_service import get_alert_service
from medsafety.services.prescription_service import get_prescription_service

router = APIRouter(prefix="/api/prescriptions", tags=["Prescriptions"])


@router.post("", status_code=201)
def create_prescription(
    request: PrescriptionCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """
    Create a prescription in PENDING_APPROVAL.

    The medication is checked against the patient's allergies and active
    prescriptions first; severe findings reject the request with 422 and
    the alerts that caused it.
    """
    prescription = get_prescription_service().create(db, request, actor_id=user_id)
    return prescription.to_dict()


@router.get("")
def list_prescriptions(
    patient_id: Optional[str] = None,
    status: Optional[PrescriptionStatus] = None,
    prescriber_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    filters = PrescriptionFilter(patient_id=patient_id, status=status, prescriber_id=prescriber_id)
    prescriptions = get_prescription_service().list(db, filters)
    return {
        "count": len(prescriptions),
        "prescriptions": [p.to_dict() for p in prescriptions]
    }


@router.get("/patient/{patient_id}/active")
def get_active_prescriptions(patient_id: str, db: Session = Depends(get_db)):
    """Active prescriptions for a patient"""
    prescriptions = get_prescription_service().find_active_by_patient(db, patient_id)
    return {
        "patient_id": patient_id,
        "prescriptions": [p.to_dict() for p in prescriptions]
    }


@router.get("/{prescription_id}")
def get_prescription(prescription_id: str, db: Session = Depends(get_db)):
    return get_prescription_service().get(db, prescription_id).to_dict()


@router.get("/{prescription_id}/alerts")
def get_prescription_alerts(prescription_id: str, db: Session = Depends(get_db)):
    get_prescription_service().get(db, prescription_id)
    alerts = get_alert_service().for_prescription(db, prescription_id)
    return {
        "prescription_id": prescription_id,
        "alerts": [a.to_dict() for a in alerts]
    }


@router.get("/{prescription_id}/administrations")
def get_prescription_administrations(prescription_id: str, db: Session = Depends(get_db)):
    get_prescription_service().get(db, prescription_id)
    administrations = get_administration_service().find_by_prescription(db, prescription_id)
    return {
        "prescription_id": prescription_id,
        "administrations": [a.to_dict() for a in administrations]
    }


@router.patch("/{prescription_id}")
def update_prescription(
    prescription_id: str,
    patch: PrescriptionUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Partial update; moving to ACTIVE re-runs the interaction check"""
    prescription = get_prescription_service().update(db, prescription_id, patch, actor_id=user_id)
    return prescription.to_dict()


# ==================== Status Transitions ====================

@router.patch("/{prescription_id}/approve")
def approve_prescription(
    prescription_id: str,
    request: Optional[ApproveRequest] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Pharmacist approval, PENDING_APPROVAL -> ACTIVE"""
    approver_id = (request.approver_id if request else None) or user_id
    prescription = get_prescription_service().approve(db, prescription_id, approver_id)
    return prescription.to_dict()


@router.patch("/{prescription_id}/cancel")
def cancel_prescription(
    prescription_id: str,
    request: CancelRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    prescription = get_prescription_service().cancel(db, prescription_id, request.reason, actor_id=user_id)
    return prescription.to_dict()


@router.patch("/{prescription_id}/refill")
def refill_prescription(
    prescription_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    prescription = get_prescription_service().refill(db, prescription_id, actor_id=user_id)
    return prescription.to_dict()


@router.patch("/{prescription_id}/expire")
def expire_prescription(
    prescription_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    prescription = get_prescription_service().expire(db, prescription_id, actor_id=user_id)
    return prescription.to_dict()


@router.delete("/{prescription_id}")
def remove_prescription(
    prescription_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Administrative removal, for data correction only"""
    get_prescription_service().remove(db, prescription_id)
    return {"status": "success", "message": f"Prescription {prescription_id} removed"}
