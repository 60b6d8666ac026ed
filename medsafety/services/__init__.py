# Services Package
from .exceptions import (
    MedicationSafetyError, NotFoundError, InvalidStateError, RejectedError,
    NoRefillsError, PatientMismatchError, ConcurrentUpdateError
)
from .interaction_knowledge import InteractionKnowledgeBase, StaticInteractionKnowledgeBase, get_knowledge_base
from .allergy_registry import AllergyRegistry, get_allergy_registry
from .alert_service import AlertService, get_alert_service
from .drug_interaction_service import DrugInteractionService, InteractionCheckResult, get_drug_interaction_service
from .prescription_service import PrescriptionService, get_prescription_service
from .administration_service import AdministrationService, get_administration_service

__all__ = [
    'MedicationSafetyError',
    'NotFoundError',
    'InvalidStateError',
    'RejectedError',
    'NoRefillsError',
    'PatientMismatchError',
    'ConcurrentUpdateError',
    'InteractionKnowledgeBase',
    'StaticInteractionKnowledgeBase',
    'get_knowledge_base',
    'AllergyRegistry',
    'get_allergy_registry',
    'AlertService',
    'get_alert_service',
    'DrugInteractionService',
    'InteractionCheckResult',
    'get_drug_interaction_service',
    'PrescriptionService',
    'get_prescription_service',
    'AdministrationService',
    'get_administration_service',
]
