"""
Patient Medication Allergy API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from medsafety.api.dependencies import get_current_user_id
from medsafety.database import get_db, AllergyStatus
from medsafety.models import AllergyCreate, AllergyUpdate, AllergyFilter
from medsafety.services.allergy_registry import get_allergy_registry

router = APIRouter(prefix="/api/patient-medication-allergies", tags=["Patient Medication Allergies"])


@router.post("", status_code=201)
def create_allergy(
    request: AllergyCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return get_allergy_registry().create(db, request, actor_id=user_id).to_dict()


@router.get("")
def list_allergies(
    patient_id: Optional[str] = None,
    status: Optional[AllergyStatus] = None,
    db: Session = Depends(get_db)
):
    allergies = get_allergy_registry().list(db, AllergyFilter(patient_id=patient_id, status=status))
    return {
        "count": len(allergies),
        "allergies": [a.to_dict() for a in allergies]
    }


@router.get("/check")
def check_medication_allergy(patient_id: str, medication_name: str, db: Session = Depends(get_db)):
    """Whether any active allergy of the patient matches the medication"""
    has_allergy = get_allergy_registry().check_medication_allergy(db, patient_id, medication_name)
    return {
        "patient_id": patient_id,
        "medication_name": medication_name,
        "has_allergy": has_allergy
    }


@router.get("/patient/{patient_id}/active")
def get_active_allergies(patient_id: str, db: Session = Depends(get_db)):
    allergies = get_allergy_registry().active_for_patient(db, patient_id)
    return {
        "patient_id": patient_id,
        "allergies": [a.to_dict() for a in allergies]
    }


@router.get("/{allergy_id}")
def get_allergy(allergy_id: str, db: Session = Depends(get_db)):
    return get_allergy_registry().get(db, allergy_id).to_dict()


@router.patch("/{allergy_id}")
def update_allergy(
    allergy_id: str,
    patch: AllergyUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return get_allergy_registry().update(db, allergy_id, patch, actor_id=user_id).to_dict()


@router.patch("/{allergy_id}/inactivate")
def inactivate_allergy(
    allergy_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return get_allergy_registry().inactivate(db, allergy_id, actor_id=user_id).to_dict()


@router.delete("/{allergy_id}")
def remove_allergy(
    allergy_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    get_allergy_registry().remove(db, allergy_id)
    return {"status": "success", "message": f"Allergy {allergy_id} removed"}
