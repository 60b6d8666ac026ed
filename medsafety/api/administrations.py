"""
Medication Administration API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from medsafety.api.dependencies import get_current_user_id
from medsafety.config import settings
from medsafety.database import get_db
from medsafety.models import AdministrationCreate, AdministrationUpdate, AdministrationFilter
from medsafety.services.administration_service import get_administration_service

router = APIRouter(prefix="/api/medication-administrations", tags=["Medication Administrations"])


@router.post("", status_code=201)
def record_administration(
    request: AdministrationCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Record a dose given (or refused/omitted) against an ACTIVE prescription"""
    return get_administration_service().create(db, request, actor_id=user_id).to_dict()


@router.get("")
def list_administrations(
    patient_id: Optional[str] = None,
    prescription_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    filters = AdministrationFilter(patient_id=patient_id, prescription_id=prescription_id)
    administrations = get_administration_service().list(db, filters)
    return {
        "count": len(administrations),
        "administrations": [a.to_dict() for a in administrations]
    }


@router.get("/patient/{patient_id}/history")
def get_patient_history(
    patient_id: str,
    days: int = Query(settings.ADMINISTRATION_HISTORY_DAYS, ge=1),
    db: Session = Depends(get_db)
):
    administrations = get_administration_service().patient_history(db, patient_id, days=days)
    return {
        "patient_id": patient_id,
        "days": days,
        "administrations": [a.to_dict() for a in administrations]
    }


@router.get("/{administration_id}")
def get_administration(administration_id: str, db: Session = Depends(get_db)):
    return get_administration_service().get(db, administration_id).to_dict()


@router.patch("/{administration_id}")
def update_administration(
    administration_id: str,
    patch: AdministrationUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return get_administration_service().update(db, administration_id, patch).to_dict()


@router.delete("/{administration_id}")
def remove_administration(
    administration_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    get_administration_service().remove(db, administration_id)
    return {"status": "success", "message": f"Administration {administration_id} removed"}
