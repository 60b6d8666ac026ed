"""
Domain errors raised by the medication-safety services
"""
from typing import List, Optional


class MedicationSafetyError(Exception):
    """Base class for caller-visible outcomes of the safety core"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MedicationSafetyError):
    """Unknown record id"""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(MedicationSafetyError):
    """Operation is illegal from the record's current state"""

    def __init__(self, message: str, current_state: Optional[str] = None):
        super().__init__(message)
        self.current_state = current_state


class RejectedError(MedicationSafetyError):
    """Blocked by a severe safety finding; carries the alerts that explain why"""

    def __init__(self, message: str, alerts: List = None):
        super().__init__(message)
        self.alerts = list(alerts or [])
        # Snapshot taken while the alerts are still bound to their session
        self._summaries = self._summarize(self.alerts)

    def alert_summaries(self) -> List[dict]:
        return list(self._summaries)

    @staticmethod
    def _summarize(alerts) -> List[dict]:
        return [
            {
                "id": alert.id,
                "interaction_type": alert.interaction_type.value,
                "severity": alert.severity.value,
                "status": alert.status.value,
                "description": alert.description,
                "recommended_action": alert.recommended_action,
            }
            for alert in alerts
        ]


class NoRefillsError(MedicationSafetyError):
    """Refill requested with no refills remaining"""


class PatientMismatchError(MedicationSafetyError):
    """Administration patient differs from the prescription's patient"""


class ConcurrentUpdateError(MedicationSafetyError):
    """Record was changed by another writer between read and write"""
