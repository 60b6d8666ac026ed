"""
Drug Interaction Service - Safety rule evaluation for a candidate medication
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from medsafety.config import settings
from medsafety.database.models import (
    Prescription, PrescriptionStatus, InteractionAlert, InteractionType, InteractionSeverity
)
from medsafety.services.alert_service import AlertService, get_alert_service
from medsafety.services.allergy_registry import AllergyRegistry, get_allergy_registry, allergy_matches
from medsafety.services.interaction_knowledge import InteractionKnowledgeBase, get_knowledge_base
from medsafety.services.locking import patient_locks

logger = logging.getLogger(__name__)


@dataclass
class InteractionCheckResult:
    """Outcome of one evaluation"""
    has_severe_interactions: bool = False
    alerts: List[InteractionAlert] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'has_severe_interactions': self.has_severe_interactions,
            'alerts': [alert.to_dict() for alert in self.alerts],
        }


class DrugInteractionService:
    """
    Interaction rule evaluator

    Checks, in order and independently of each other:
    - Allergy conflicts against the patient's ACTIVE allergies
    - Drug-drug interactions against the patient's other ACTIVE prescriptions
    - Duplicate therapy (same medication already active)

    Every finding is persisted as an alert before the result is returned,
    so the record survives even when the caller rejects the action.
    """

    def __init__(
        self,
        knowledge_base: InteractionKnowledgeBase = None,
        allergy_registry: AllergyRegistry = None,
        alert_service: AlertService = None,
        honor_overrides: bool = None
    ):
        self.knowledge_base = knowledge_base or get_knowledge_base()
        self.allergy_registry = allergy_registry or get_allergy_registry()
        self.alert_service = alert_service or get_alert_service()
        self.honor_overrides = settings.HONOR_ALERT_OVERRIDES if honor_overrides is None else honor_overrides

    def check_interactions(
        self,
        db: Session,
        patient_id: str,
        medication_name: str,
        medication_id: Optional[str] = None,
        prescription_id: Optional[str] = None
    ) -> InteractionCheckResult:
        """
        Evaluate a candidate medication for a patient.

        Args:
            patient_id: Patient the medication is for
            medication_name: Candidate medication name
            medication_id: Catalog id; active prescriptions with the same id are skipped
            prescription_id: Prescription being re-checked; never compared with itself

        Returns:
            InteractionCheckResult with the persisted alerts
        """
        with patient_locks.hold(patient_id):
            result = InteractionCheckResult()
            subject = db.get(Prescription, prescription_id) if prescription_id else None
            subject_links = [subject] if subject is not None else []

            self._check_allergies(db, patient_id, medication_name, subject_links, result)

            others = [
                rx for rx in self._active_prescriptions(db, patient_id)
                if rx.id != prescription_id
                and not (medication_id is not None and rx.medication_id == medication_id)
            ]
            self._check_drug_drug(db, patient_id, medication_name, others, subject_links, result)
            self._check_duplicate_therapy(db, patient_id, medication_name, others, subject_links, result)

        result.has_severe_interactions = any(alert.is_severe_interaction for alert in result.alerts)
        if result.has_severe_interactions:
            logger.warning(
                f"Severe interactions for patient {patient_id} with {medication_name}: "
                f"{len(result.alerts)} alert(s)"
            )
        return result

    def _active_prescriptions(self, db: Session, patient_id: str) -> List[Prescription]:
        return db.query(Prescription).filter(
            Prescription.patient_id == patient_id,
            Prescription.status == PrescriptionStatus.ACTIVE
        ).order_by(Prescription.created_at.asc()).all()

    def _check_allergies(self, db, patient_id, medication_name, subject_links, result):
        for allergy in self.allergy_registry.active_for_patient(db, patient_id):
            if not allergy_matches(allergy, medication_name):
                continue
            self._emit(
                db, result,
                patient_id=patient_id,
                interaction_type=InteractionType.DRUG_ALLERGY,
                severity=InteractionSeverity.CONTRAINDICATION,
                finding_key=f"DRUG_ALLERGY:{allergy.substance.lower()}:{medication_name.lower()}",
                description=f"Patient is allergic to {allergy.substance}",
                evidence_text=f"Allergy recorded: {allergy.reaction or 'No specific reaction noted'}",
                recommended_action="Consider alternative medication",
                requires_acknowledgment=True,
                related_prescriptions=subject_links
            )

    def _check_drug_drug(self, db, patient_id, medication_name, others, subject_links, result):
        for existing in others:
            finding = self.knowledge_base.find_interaction(medication_name, existing.medication_name)
            if finding is None:
                continue

            severe = finding.severity.is_severe
            pair = sorted([medication_name.lower(), existing.medication_name.lower()])
            self._emit(
                db, result,
                patient_id=patient_id,
                interaction_type=InteractionType.DRUG_DRUG,
                severity=finding.severity,
                finding_key=f"DRUG_DRUG:{pair[0]}|{pair[1]}",
                description=f"Potential interaction between {medication_name} and {existing.medication_name}",
                evidence_text=f"Interaction table match: {finding.matched_pair[0]} / {finding.matched_pair[1]}",
                recommended_action=(
                    "Consider alternative medication or obtain override authorization"
                    if severe else "Monitor patient closely"
                ),
                requires_acknowledgment=severe,
                related_prescriptions=subject_links + [existing]
            )

    def _check_duplicate_therapy(self, db, patient_id, medication_name, others, subject_links, result):
        duplicate = next(
            (rx for rx in others if rx.medication_name.lower() == medication_name.lower()),
            None
        )
        if duplicate is None:
            return

        self._emit(
            db, result,
            patient_id=patient_id,
            interaction_type=InteractionType.DUPLICATE_THERAPY,
            severity=InteractionSeverity.MODERATE,
            finding_key=f"DUPLICATE_THERAPY:{medication_name.lower()}",
            description=f"Duplicate therapy detected: {medication_name} is already prescribed",
            evidence_text=f"Existing prescription ID: {duplicate.id}",
            recommended_action="Review and confirm if duplicate therapy is intended",
            requires_acknowledgment=True,
            related_prescriptions=subject_links + [duplicate]
        )

    def _emit(self, db: Session, result: InteractionCheckResult, finding_key: str, **alert_fields):
        if self.honor_overrides:
            prior = self.alert_service.find_overridden(db, alert_fields['patient_id'], finding_key)
            if prior is not None:
                logger.info(f"Finding {finding_key} already overridden by alert {prior.id}")
                result.alerts.append(prior)
                return

        alert = self.alert_service.record_alert(db, finding_key=finding_key, **alert_fields)
        result.alerts.append(alert)


_drug_interaction_service = None


def get_drug_interaction_service() -> DrugInteractionService:
    """Get singleton drug interaction service"""
    global _drug_interaction_service
    if _drug_interaction_service is None:
        _drug_interaction_service = DrugInteractionService()
    return _drug_interaction_service
