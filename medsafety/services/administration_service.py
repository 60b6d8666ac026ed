"""
Administration Service - Recording medication administrations
"""
import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy.orm import Session

from medsafety.config import settings
from medsafety.database.models import MedicationAdministration, Prescription, PrescriptionStatus
from medsafety.models.administration import AdministrationCreate, AdministrationUpdate, AdministrationFilter
from medsafety.services.exceptions import NotFoundError, InvalidStateError, PatientMismatchError
from medsafety.services.locking import patient_locks, prescription_locks

logger = logging.getLogger(__name__)

# Columns a patch may not clear
_NON_NULL_FIELDS = {'administered_at', 'was_refused', 'was_omitted'}


class AdministrationService:
    """
    Administration recorder

    Administrations are only accepted against an ACTIVE prescription of the
    same patient; once recorded they stay attached to that prescription.
    """

    def create(self, db: Session, request: AdministrationCreate, actor_id: str) -> MedicationAdministration:
        found = db.get(Prescription, request.prescription_id)
        if found is None:
            raise NotFoundError("Prescription", request.prescription_id)

        # Same lock order as prescription changes; status is re-read once both are held
        with patient_locks.hold(found.patient_id), prescription_locks.hold(request.prescription_id):
            prescription = db.get(Prescription, request.prescription_id, populate_existing=True)
            if prescription is None:
                raise NotFoundError("Prescription", request.prescription_id)

            if prescription.status != PrescriptionStatus.ACTIVE:
                raise InvalidStateError(
                    f"Cannot record administration against a {prescription.status.value} prescription",
                    prescription.status.value
                )
            if prescription.patient_id != request.patient_id:
                raise PatientMismatchError(
                    f"Patient {request.patient_id} does not match prescription patient {prescription.patient_id}"
                )

            data = request.model_dump()
            data['administered_by'] = data.get('administered_by') or actor_id
            administration = MedicationAdministration(**data)

            db.add(administration)
            db.commit()
            db.refresh(administration)

        logger.info(
            f"Recorded administration {administration.id} of {prescription.medication_name} "
            f"for patient {administration.patient_id}"
        )
        return administration

    def update(self, db: Session, administration_id: str, patch: AdministrationUpdate) -> MedicationAdministration:
        administration = self.get(db, administration_id)
        changes = patch.model_dump(exclude_unset=True)

        patient_id = changes.pop('patient_id', None)
        if patient_id is not None and patient_id != administration.patient_id:
            raise PatientMismatchError(f"Administration {administration_id} cannot be moved to another patient")

        prescription_id = changes.pop('prescription_id', None)
        if prescription_id is not None and prescription_id != administration.prescription_id:
            raise InvalidStateError(f"Administration {administration_id} cannot be moved to another prescription")

        for field, value in changes.items():
            if field in _NON_NULL_FIELDS and value is None:
                continue
            setattr(administration, field, value)

        db.commit()
        db.refresh(administration)
        return administration

    def remove(self, db: Session, administration_id: str) -> None:
        administration = self.get(db, administration_id)
        db.delete(administration)
        db.commit()
        logger.warning(f"Removed administration record {administration_id}")

    # ==================== Queries ====================

    def get(self, db: Session, administration_id: str) -> MedicationAdministration:
        administration = db.get(MedicationAdministration, administration_id)
        if administration is None:
            raise NotFoundError("Medication administration", administration_id)
        return administration

    def list(self, db: Session, filters: AdministrationFilter = None) -> List[MedicationAdministration]:
        query = db.query(MedicationAdministration)
        if filters is not None:
            if filters.patient_id is not None:
                query = query.filter(MedicationAdministration.patient_id == filters.patient_id)
            if filters.prescription_id is not None:
                query = query.filter(MedicationAdministration.prescription_id == filters.prescription_id)
        return query.order_by(MedicationAdministration.administered_at.desc()).all()

    def find_by_patient(self, db: Session, patient_id: str) -> List[MedicationAdministration]:
        return self.list(db, AdministrationFilter(patient_id=patient_id))

    def find_by_prescription(self, db: Session, prescription_id: str) -> List[MedicationAdministration]:
        return self.list(db, AdministrationFilter(prescription_id=prescription_id))

    def patient_history(self, db: Session, patient_id: str, days: int = None) -> List[MedicationAdministration]:
        """Administrations within the last `days` days, newest first"""
        days = settings.ADMINISTRATION_HISTORY_DAYS if days is None else days
        since = datetime.utcnow() - timedelta(days=days)
        return db.query(MedicationAdministration).filter(
            MedicationAdministration.patient_id == patient_id,
            MedicationAdministration.administered_at >= since
        ).order_by(MedicationAdministration.administered_at.desc()).all()


_administration_service = None


def get_administration_service() -> AdministrationService:
    """Get singleton administration service"""
    global _administration_service
    if _administration_service is None:
        _administration_service = AdministrationService()
    return _administration_service
