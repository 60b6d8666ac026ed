"""
Prescription Service - Prescription lifecycle management

Creation and activation are gated by the drug interaction service; every
status change follows PRESCRIPTION_TRANSITIONS.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, List

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from medsafety.database.models import AlertStatus, Prescription, PrescriptionStatus
from medsafety.models.prescription import PrescriptionCreate, PrescriptionUpdate, PrescriptionFilter
from medsafety.services.drug_interaction_service import (
    DrugInteractionService, InteractionCheckResult, get_drug_interaction_service
)
from medsafety.services.exceptions import (
    NotFoundError, InvalidStateError, RejectedError, NoRefillsError, ConcurrentUpdateError
)
from medsafety.services.locking import patient_locks, prescription_locks

logger = logging.getLogger(__name__)

# Columns a patch may not clear
_REQUIRED_FIELDS = {
    'medication_name', 'strength', 'dosage_form', 'quantity', 'quantity_unit',
    'route', 'frequency', 'refills_allowed',
}


class PrescriptionService:
    """
    Prescription lifecycle manager

    PENDING_APPROVAL -> ACTIVE -> CANCELLED | EXPIRED
    PENDING_APPROVAL -> CANCELLED
    ACTIVE -> ACTIVE (refill)
    """

    def __init__(self, interaction_service: DrugInteractionService = None):
        self._interaction_service = interaction_service

    @property
    def interaction_service(self) -> DrugInteractionService:
        if self._interaction_service is None:
            self._interaction_service = get_drug_interaction_service()
        return self._interaction_service

    # ==================== Lifecycle ====================

    def create(self, db: Session, request: PrescriptionCreate, actor_id: str) -> Prescription:
        """
        Evaluate and persist a new prescription in PENDING_APPROVAL.

        Raises:
            RejectedError: severe interactions found; nothing is persisted
                for the prescription but the alerts stay recorded
        """
        with patient_locks.hold(request.patient_id):
            check = self.interaction_service.check_interactions(
                db,
                patient_id=request.patient_id,
                medication_name=request.medication_name,
                medication_id=request.medication_id
            )
            self._raise_if_severe(check, request.patient_id, request.medication_name)

            prescription = Prescription(
                **request.model_dump(),
                status=PrescriptionStatus.PENDING_APPROVAL,
                refills_remaining=request.refills_allowed,
                contraindications_checked=True,
                created_by=actor_id,
                updated_by=actor_id
            )
            # Reused overridden alerts keep their original references
            prescription.interaction_alerts.extend(
                alert for alert in check.alerts if alert.status == AlertStatus.ACTIVE
            )

            db.add(prescription)
            db.commit()
            db.refresh(prescription)

        logger.info(
            f"Created prescription {prescription.id} ({prescription.medication_name}) "
            f"for patient {prescription.patient_id} with {len(check.alerts)} alert(s)"
        )
        return prescription

    def approve(self, db: Session, prescription_id: str, approver_id: str) -> Prescription:
        with self._exclusive(db, prescription_id) as prescription:
            if prescription.status != PrescriptionStatus.PENDING_APPROVAL:
                raise InvalidStateError(
                    f"Prescription {prescription_id} is {prescription.status.value}; "
                    f"only PENDING_APPROVAL prescriptions can be approved",
                    prescription.status.value
                )

            prescription.status = PrescriptionStatus.ACTIVE
            prescription.authorizing_pharmacist_id = approver_id
            prescription.verification_timestamp = datetime.utcnow()
            prescription.updated_by = approver_id
            self._commit(db, prescription)

        logger.info(f"Prescription {prescription_id} approved by {approver_id}")
        return prescription

    def update(self, db: Session, prescription_id: str, patch: PrescriptionUpdate, actor_id: str) -> Prescription:
        """
        Apply a partial update.

        A patch moving the prescription to ACTIVE re-runs the interaction
        check against the patient's current medications first.
        """
        changes = patch.model_dump(exclude_unset=True)
        target = changes.pop('status', None)

        with self._exclusive(db, prescription_id) as prescription:
            current = prescription.status
            if target is not None and target != current and not current.can_transition_to(target):
                raise InvalidStateError(
                    f"Cannot move prescription {prescription_id} from {current.value} to {target.value}",
                    current.value
                )

            if target == PrescriptionStatus.ACTIVE and current != PrescriptionStatus.ACTIVE:
                medication_name = changes.get('medication_name') or prescription.medication_name
                check = self.interaction_service.check_interactions(
                    db,
                    patient_id=prescription.patient_id,
                    medication_name=medication_name,
                    medication_id=changes.get('medication_id', prescription.medication_id),
                    prescription_id=prescription_id
                )
                self._raise_if_severe(check, prescription.patient_id, medication_name)

            for field, value in changes.items():
                if value is None and field in _REQUIRED_FIELDS:
                    continue
                setattr(prescription, field, value)

            if prescription.refills_remaining > prescription.refills_allowed:
                prescription.refills_remaining = prescription.refills_allowed

            if target is not None:
                prescription.status = target
            prescription.updated_by = actor_id
            self._commit(db, prescription)

        if target is not None and target != current:
            logger.info(f"Prescription {prescription_id} {current.value} -> {target.value} by {actor_id}")
        return prescription

    def cancel(self, db: Session, prescription_id: str, reason: str, actor_id: str) -> Prescription:
        with self._exclusive(db, prescription_id) as prescription:
            self._require_transition(prescription, PrescriptionStatus.CANCELLED)

            prescription.status = PrescriptionStatus.CANCELLED
            prescription.cancellation_reason = reason
            prescription.updated_by = actor_id
            self._commit(db, prescription)

        logger.info(f"Prescription {prescription_id} cancelled by {actor_id}: {reason}")
        return prescription

    def expire(self, db: Session, prescription_id: str, actor_id: str) -> Prescription:
        with self._exclusive(db, prescription_id) as prescription:
            self._require_transition(prescription, PrescriptionStatus.EXPIRED)

            prescription.status = PrescriptionStatus.EXPIRED
            prescription.updated_by = actor_id
            self._commit(db, prescription)

        logger.info(f"Prescription {prescription_id} expired")
        return prescription

    def refill(self, db: Session, prescription_id: str, actor_id: str) -> Prescription:
        with self._exclusive(db, prescription_id) as prescription:
            if prescription.status != PrescriptionStatus.ACTIVE:
                raise InvalidStateError(
                    f"Prescription {prescription_id} is {prescription.status.value}; only ACTIVE prescriptions can be refilled",
                    prescription.status.value
                )
            if prescription.refills_remaining <= 0:
                raise NoRefillsError(f"No refills remaining for prescription {prescription_id}")

            prescription.refills_remaining -= 1
            prescription.updated_by = actor_id
            self._commit(db, prescription)

        logger.info(
            f"Prescription {prescription_id} refilled by {actor_id}, "
            f"{prescription.refills_remaining} of {prescription.refills_allowed} remaining"
        )
        return prescription

    def remove(self, db: Session, prescription_id: str) -> None:
        """Administrative hard delete; administrations go with it"""
        with self._exclusive(db, prescription_id) as prescription:
            db.delete(prescription)
            self._commit(db)

        logger.warning(f"Removed prescription {prescription_id}")

    # ==================== Queries ====================

    def get(self, db: Session, prescription_id: str) -> Prescription:
        prescription = db.get(Prescription, prescription_id)
        if prescription is None:
            raise NotFoundError("Prescription", prescription_id)
        return prescription

    def list(self, db: Session, filters: PrescriptionFilter = None) -> List[Prescription]:
        query = db.query(Prescription)
        if filters is not None:
            if filters.patient_id is not None:
                query = query.filter(Prescription.patient_id == filters.patient_id)
            if filters.status is not None:
                query = query.filter(Prescription.status == filters.status)
            if filters.prescriber_id is not None:
                query = query.filter(Prescription.prescriber_id == filters.prescriber_id)
        return query.order_by(Prescription.created_at.desc()).all()

    def find_by_patient(self, db: Session, patient_id: str) -> List[Prescription]:
        return self.list(db, PrescriptionFilter(patient_id=patient_id))

    def find_active_by_patient(self, db: Session, patient_id: str) -> List[Prescription]:
        return self.list(db, PrescriptionFilter(patient_id=patient_id, status=PrescriptionStatus.ACTIVE))

    # ==================== Helpers ====================

    @contextmanager
    def _exclusive(self, db: Session, prescription_id: str) -> Generator[Prescription, None, None]:
        # Patient lock first, then prescription lock; row re-read once both are held
        patient_id = self.get(db, prescription_id).patient_id
        with patient_locks.hold(patient_id), prescription_locks.hold(prescription_id):
            prescription = db.get(Prescription, prescription_id, populate_existing=True)
            if prescription is None:
                raise NotFoundError("Prescription", prescription_id)
            yield prescription

    def _commit(self, db: Session, prescription: Prescription = None) -> None:
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning("Prescription changed by another writer, rolled back")
            raise ConcurrentUpdateError("Prescription was modified concurrently; reload and retry")
        if prescription is not None:
            db.refresh(prescription)

    def _require_transition(self, prescription: Prescription, target: PrescriptionStatus) -> None:
        if not prescription.status.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move prescription {prescription.id} from {prescription.status.value} to {target.value}",
                prescription.status.value
            )

    def _raise_if_severe(self, check: InteractionCheckResult, patient_id: str, medication_name: str) -> None:
        if not check.has_severe_interactions:
            return
        severe = [alert for alert in check.alerts if alert.is_severe_interaction]
        logger.warning(
            f"Rejected {medication_name} for patient {patient_id}: "
            + "; ".join(alert.description for alert in severe)
        )
        raise RejectedError(
            f"{medication_name} rejected for patient {patient_id}: severe interactions detected",
            check.alerts
        )


_prescription_service = None


def get_prescription_service() -> PrescriptionService:
    """Get singleton prescription service"""
    global _prescription_service
    if _prescription_service is None:
        _prescription_service = PrescriptionService()
    return _prescription_service
