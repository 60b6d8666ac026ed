"""
Allergy Registry - Patient medication allergies
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from medsafety.database.models import PatientMedicationAllergy, AllergyStatus
from medsafety.models.allergy import AllergyCreate, AllergyUpdate, AllergyFilter
from medsafety.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def allergy_matches(allergy: PatientMedicationAllergy, medication_name: str) -> bool:
    """Substance or substance class contained in the medication name, case-insensitive"""
    medication_lower = medication_name.lower()
    if allergy.substance and allergy.substance.lower() in medication_lower:
        return True
    return bool(allergy.substance_class) and allergy.substance_class.lower() in medication_lower


class AllergyRegistry:
    """
    Allergy registry

    Allergies are inactivated rather than deleted; only ACTIVE entries
    take part in interaction checks.
    """

    def create(self, db: Session, request: AllergyCreate, actor_id: str) -> PatientMedicationAllergy:
        allergy = PatientMedicationAllergy(**request.model_dump(), recorded_by=actor_id)
        db.add(allergy)
        db.commit()
        db.refresh(allergy)

        logger.info(f"Recorded {allergy.status.value} allergy to {allergy.substance} for patient {allergy.patient_id}")
        return allergy

    def get(self, db: Session, allergy_id: str) -> PatientMedicationAllergy:
        allergy = db.get(PatientMedicationAllergy, allergy_id)
        if allergy is None:
            raise NotFoundError("Patient medication allergy", allergy_id)
        return allergy

    def list(self, db: Session, filters: AllergyFilter = None) -> List[PatientMedicationAllergy]:
        query = db.query(PatientMedicationAllergy)
        if filters is not None:
            if filters.patient_id is not None:
                query = query.filter(PatientMedicationAllergy.patient_id == filters.patient_id)
            if filters.status is not None:
                query = query.filter(PatientMedicationAllergy.status == filters.status)
        return query.order_by(PatientMedicationAllergy.created_at.desc()).all()

    def find_by_patient(self, db: Session, patient_id: str) -> List[PatientMedicationAllergy]:
        return self.list(db, AllergyFilter(patient_id=patient_id))

    def active_for_patient(self, db: Session, patient_id: str) -> List[PatientMedicationAllergy]:
        return db.query(PatientMedicationAllergy).filter(
            PatientMedicationAllergy.patient_id == patient_id,
            PatientMedicationAllergy.status == AllergyStatus.ACTIVE
        ).order_by(PatientMedicationAllergy.substance.asc()).all()

    def update(self, db: Session, allergy_id: str, patch: AllergyUpdate, actor_id: str) -> PatientMedicationAllergy:
        allergy = self.get(db, allergy_id)

        for field, value in patch.model_dump(exclude_unset=True).items():
            setattr(allergy, field, value)
        allergy.updated_by = actor_id

        db.commit()
        db.refresh(allergy)
        return allergy

    def inactivate(self, db: Session, allergy_id: str, actor_id: str) -> PatientMedicationAllergy:
        allergy = self.get(db, allergy_id)
        allergy.status = AllergyStatus.INACTIVE
        allergy.updated_by = actor_id

        db.commit()
        db.refresh(allergy)

        logger.info(f"Inactivated allergy {allergy_id} ({allergy.substance}) by {actor_id}")
        return allergy

    def remove(self, db: Session, allergy_id: str) -> None:
        allergy = self.get(db, allergy_id)
        db.delete(allergy)
        db.commit()
        logger.warning(f"Removed allergy record {allergy_id} for patient {allergy.patient_id}")

    def check_medication_allergy(self, db: Session, patient_id: str, medication_name: str) -> bool:
        """True if any active allergy of the patient matches the medication"""
        return any(
            allergy_matches(allergy, medication_name)
            for allergy in self.active_for_patient(db, patient_id)
        )


_allergy_registry = None


def get_allergy_registry() -> AllergyRegistry:
    """Get singleton allergy registry"""
    global _allergy_registry
    if _allergy_registry is None:
        _allergy_registry = AllergyRegistry()
    return _allergy_registry
