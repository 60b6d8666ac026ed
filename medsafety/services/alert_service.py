"""
Alert Service - Interaction alert lifecycle

Alerts are compliance records: they are created by the rule evaluator,
moved out of ACTIVE at most once by a clinician, and never deleted.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from medsafety.database.models import (
    InteractionAlert, InteractionType, InteractionSeverity, AlertStatus, Prescription,
    interaction_alert_prescriptions
)
from medsafety.models.alert import AlertFilter
from medsafety.services.exceptions import NotFoundError, InvalidStateError

logger = logging.getLogger(__name__)


class AlertService:
    """
    Alert lifecycle manager

    Features:
    - Immediate persistence of evaluator findings
    - Acknowledge / override / resolve with actor and timestamp
    - Lookup of prior overrides for the same finding
    """

    # ==================== Creation ====================

    def record_alert(
        self,
        db: Session,
        patient_id: str,
        interaction_type: InteractionType,
        severity: InteractionSeverity,
        finding_key: str,
        description: str,
        evidence_text: str = None,
        recommended_action: str = None,
        requires_acknowledgment: bool = False,
        related_prescriptions: Iterable[Prescription] = ()
    ) -> InteractionAlert:
        """Persist a new ACTIVE alert and commit it straight away"""
        alert = InteractionAlert(
            patient_id=patient_id,
            interaction_type=interaction_type,
            severity=severity,
            finding_key=finding_key,
            description=description,
            evidence_text=evidence_text,
            recommended_action=recommended_action,
            status=AlertStatus.ACTIVE,
            requires_acknowledgment=requires_acknowledgment
        )
        alert.related_prescriptions.extend(related_prescriptions)

        db.add(alert)
        db.commit()
        db.refresh(alert)

        logger.info(
            f"Alert {alert.id}: {interaction_type.value}/{severity.value} for patient {patient_id} - {description}"
        )
        return alert

    def find_overridden(self, db: Session, patient_id: str, finding_key: str) -> Optional[InteractionAlert]:
        """Most recent OVERRIDDEN alert for the same finding, if any"""
        return db.query(InteractionAlert).filter(
            InteractionAlert.patient_id == patient_id,
            InteractionAlert.finding_key == finding_key,
            InteractionAlert.status == AlertStatus.OVERRIDDEN
        ).order_by(InteractionAlert.overridden_at.desc()).first()

    # ==================== Transitions ====================

    def override(self, db: Session, alert_id: str, overridden_by: str, reason: str) -> InteractionAlert:
        return self._transition_from_active(db, alert_id, AlertStatus.OVERRIDDEN, {
            InteractionAlert.overridden_by: overridden_by,
            InteractionAlert.override_reason: reason,
            InteractionAlert.overridden_at: datetime.utcnow(),
        })

    def acknowledge(self, db: Session, alert_id: str, acknowledged_by: str) -> InteractionAlert:
        return self._transition_from_active(db, alert_id, AlertStatus.ACKNOWLEDGED, {
            InteractionAlert.acknowledged_by: acknowledged_by,
            InteractionAlert.acknowledged_at: datetime.utcnow(),
        })

    def resolve(self, db: Session, alert_id: str, resolved_by: str, note: str = None) -> InteractionAlert:
        """
        Close out an alert.

        An ACTIVE alert becomes RESOLVED. An acknowledged or overridden alert
        keeps its status and only gains the resolution bookkeeping.
        """
        alert = self.get(db, alert_id)
        if alert.resolved_at is not None:
            raise InvalidStateError(f"Alert {alert_id} is already resolved", alert.status.value)

        if alert.status == AlertStatus.ACTIVE:
            return self._transition_from_active(db, alert_id, AlertStatus.RESOLVED, {
                InteractionAlert.resolved_by: resolved_by,
                InteractionAlert.resolution_note: note,
                InteractionAlert.resolved_at: datetime.utcnow(),
            })

        alert.resolved_by = resolved_by
        alert.resolution_note = note
        alert.resolved_at = datetime.utcnow()
        db.commit()
        db.refresh(alert)
        logger.info(f"Alert {alert_id} ({alert.status.value}) resolved by {resolved_by}")
        return alert

    def _transition_from_active(self, db: Session, alert_id: str, target: AlertStatus, values: dict) -> InteractionAlert:
        # Conditional update so two clinicians cannot both move the same alert
        values = dict(values)
        values[InteractionAlert.status] = target
        values[InteractionAlert.updated_at] = datetime.utcnow()

        updated = db.query(InteractionAlert).filter(
            InteractionAlert.id == alert_id,
            InteractionAlert.status == AlertStatus.ACTIVE
        ).update(values, synchronize_session=False)
        db.commit()

        alert = self.get(db, alert_id)
        if updated == 0:
            raise InvalidStateError(
                f"Alert {alert_id} is {alert.status.value}; only ACTIVE alerts can be {target.value.lower()}",
                alert.status.value
            )

        db.refresh(alert)
        logger.info(f"Alert {alert_id} -> {target.value}")
        return alert

    # ==================== Queries ====================

    def get(self, db: Session, alert_id: str) -> InteractionAlert:
        alert = db.get(InteractionAlert, alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert

    def list(self, db: Session, filters: AlertFilter = None) -> List[InteractionAlert]:
        query = db.query(InteractionAlert)
        if filters is not None:
            if filters.patient_id is not None:
                query = query.filter(InteractionAlert.patient_id == filters.patient_id)
            if filters.status is not None:
                query = query.filter(InteractionAlert.status == filters.status)
            if filters.interaction_type is not None:
                query = query.filter(InteractionAlert.interaction_type == filters.interaction_type)
            if filters.severity is not None:
                query = query.filter(InteractionAlert.severity == filters.severity)
        return query.order_by(InteractionAlert.created_at.desc()).all()

    def for_prescription(self, db: Session, prescription_id: str) -> List[InteractionAlert]:
        return db.query(InteractionAlert).join(
            interaction_alert_prescriptions,
            interaction_alert_prescriptions.c.alert_id == InteractionAlert.id
        ).filter(
            interaction_alert_prescriptions.c.prescription_id == prescription_id
        ).order_by(InteractionAlert.created_at.desc()).all()


_alert_service = None


def get_alert_service() -> AlertService:
    """Get singleton alert service"""
    global _alert_service
    if _alert_service is None:
        _alert_service = AlertService()
    return _alert_service
