"""
Database Package
Provides database models, connection management, and session handling
"""
from medsafety.database.connection import get_db, db_manager, init_database
from medsafety.database.models import (
    Base, Prescription, PrescriptionStatus, MedicationRoute,
    InteractionAlert, InteractionType, InteractionSeverity, AlertStatus,
    PatientMedicationAllergy, AllergySeverity, AllergyStatus,
    MedicationAdministration, PRESCRIPTION_TRANSITIONS, SEVERITY_RANK
)


__all__ = [
    'get_db', 'db_manager', 'init_database',
    'Base', 'Prescription', 'PrescriptionStatus', 'MedicationRoute',
    'InteractionAlert', 'InteractionType', 'InteractionSeverity', 'AlertStatus',
    'PatientMedicationAllergy', 'AllergySeverity', 'AllergyStatus',
    'MedicationAdministration', 'PRESCRIPTION_TRANSITIONS', 'SEVERITY_RANK'
]
