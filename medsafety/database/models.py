"""
Database Models
SQLAlchemy models for the prescription lifecycle and medication-safety engine
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean,
    ForeignKey, JSON, Enum as SQLEnum, Index, Table
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class PrescriptionStatus(enum.Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return not PRESCRIPTION_TRANSITIONS[self]

    def can_transition_to(self, target: "PrescriptionStatus") -> bool:
        return target in PRESCRIPTION_TRANSITIONS[self]


class MedicationRoute(enum.Enum):
    ORAL = "ORAL"
    SUBLINGUAL = "SUBLINGUAL"
    INTRAVENOUS = "INTRAVENOUS"
    INTRAMUSCULAR = "INTRAMUSCULAR"
    SUBCUTANEOUS = "SUBCUTANEOUS"
    TOPICAL = "TOPICAL"
    INHALATION = "INHALATION"
    RECTAL = "RECTAL"
    TRANSDERMAL = "TRANSDERMAL"
    OPHTHALMIC = "OPHTHALMIC"
    OTHER = "OTHER"


class InteractionType(enum.Enum):
    DRUG_DRUG = "DRUG_DRUG"
    DRUG_ALLERGY = "DRUG_ALLERGY"
    DRUG_CONDITION = "DRUG_CONDITION"
    DUPLICATE_THERAPY = "DUPLICATE_THERAPY"
    DOSE_CHECK = "DOSE_CHECK"


class InteractionSeverity(enum.Enum):
    CONTRAINDICATION = "CONTRAINDICATION"
    SEVERE = "SEVERE"
    MODERATE = "MODERATE"
    MILD = "MILD"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]

    @property
    def is_severe(self) -> bool:
        return self.rank >= SEVERITY_RANK[InteractionSeverity.SEVERE]


class AlertStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    OVERRIDDEN = "OVERRIDDEN"
    RESOLVED = "RESOLVED"


class AllergySeverity(enum.Enum):
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"
    LIFE_THREATENING = "LIFE_THREATENING"
    UNKNOWN = "UNKNOWN"


class AllergyStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    RESOLVED = "RESOLVED"


# Refill keeps an ACTIVE prescription ACTIVE, hence the self edge
PRESCRIPTION_TRANSITIONS = {
    PrescriptionStatus.PENDING_APPROVAL: {PrescriptionStatus.ACTIVE, PrescriptionStatus.CANCELLED},
    PrescriptionStatus.ACTIVE: {PrescriptionStatus.ACTIVE, PrescriptionStatus.CANCELLED, PrescriptionStatus.EXPIRED},
    PrescriptionStatus.CANCELLED: set(),
    PrescriptionStatus.EXPIRED: set(),
}

SEVERITY_RANK = {
    InteractionSeverity.CONTRAINDICATION: 4,
    InteractionSeverity.SEVERE: 3,
    InteractionSeverity.MODERATE: 2,
    InteractionSeverity.MILD: 1,
    InteractionSeverity.UNKNOWN: 0,
}


def _require_exhaustive(table: dict, enum_cls) -> None:
    missing = [member.name for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} members missing from lookup table: {missing}")


_require_exhaustive(PRESCRIPTION_TRANSITIONS, PrescriptionStatus)
_require_exhaustive(SEVERITY_RANK, InteractionSeverity)


def _iso(value):
    return value.isoformat() if value else None


# Alerts point at the prescriptions they concern without owning them
interaction_alert_prescriptions = Table(
    'interaction_alert_prescriptions',
    Base.metadata,
    Column('alert_id', String(36), ForeignKey('interaction_alerts.id'), primary_key=True),
    Column('prescription_id', String(36), ForeignKey('prescriptions.id', ondelete='CASCADE'), primary_key=True)
)


class Prescription(Base):
    """Prescription records and their lifecycle state"""
    __tablename__ = 'prescriptions'

    id = Column(String(36), primary_key=True, default=_new_id)
    patient_id = Column(String(64), nullable=False)
    prescriber_id = Column(String(64), nullable=False)
    issue_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    status = Column(SQLEnum(PrescriptionStatus), nullable=False, default=PrescriptionStatus.PENDING_APPROVAL)

    # Medication
    medication_id = Column(String(64))
    medication_name = Column(String(200), nullable=False)
    strength = Column(String(100), nullable=False)
    dosage_form = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    quantity_unit = Column(String(50), nullable=False)

    # Administration instructions
    route = Column(SQLEnum(MedicationRoute), nullable=False)
    frequency = Column(String(100), nullable=False)
    timing_instructions = Column(String(200))
    duration_days = Column(Integer)
    start_date = Column(DateTime)
    end_date = Column(DateTime)
    prn_reason = Column(String(200))
    max_dose_per_period = Column(String(100))

    # Refills and dispensing
    refills_allowed = Column(Integer, nullable=False, default=0)
    refills_remaining = Column(Integer, nullable=False, default=0)
    dispense_as_written = Column(Boolean, default=False)
    pharmacy_id = Column(String(64))
    pharmacy_notes = Column(Text)

    # Safety
    allergies_noted = Column(JSON, default=list)
    contraindications_checked = Column(Boolean, default=False)

    # Workflow
    authorizing_pharmacist_id = Column(String(64))
    verification_timestamp = Column(DateTime)
    cancellation_reason = Column(Text)
    notes = Column(Text)
    source = Column(String(100))

    created_by = Column(String(64), nullable=False)
    updated_by = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    version = Column(Integer, nullable=False)

    # Relationships
    administrations = relationship(
        "MedicationAdministration",
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="desc(MedicationAdministration.administered_at)"
    )
    interaction_alerts = relationship(
        "InteractionAlert",
        secondary=interaction_alert_prescriptions,
        back_populates="related_prescriptions"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_prescription_patient_status', 'patient_id', 'status'),
        Index('idx_prescription_prescriber', 'prescriber_id'),
    )

    def __repr__(self):
        return f"<Prescription {self.id} {self.medication_name} {self.status.value}>"

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "prescriber_id": self.prescriber_id,
            "issue_date": _iso(self.issue_date),
            "status": self.status.value,
            "medication_id": self.medication_id,
            "medication_name": self.medication_name,
            "strength": self.strength,
            "dosage_form": self.dosage_form,
            "quantity": self.quantity,
            "quantity_unit": self.quantity_unit,
            "route": self.route.value,
            "frequency": self.frequency,
            "timing_instructions": self.timing_instructions,
            "duration_days": self.duration_days,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "prn_reason": self.prn_reason,
            "max_dose_per_period": self.max_dose_per_period,
            "refills_allowed": self.refills_allowed,
            "refills_remaining": self.refills_remaining,
            "dispense_as_written": self.dispense_as_written,
            "pharmacy_id": self.pharmacy_id,
            "pharmacy_notes": self.pharmacy_notes,
            "allergies_noted": self.allergies_noted or [],
            "contraindications_checked": self.contraindications_checked,
            "authorizing_pharmacist_id": self.authorizing_pharmacist_id,
            "verification_timestamp": _iso(self.verification_timestamp),
            "cancellation_reason": self.cancellation_reason,
            "notes": self.notes,
            "source": self.source,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class InteractionAlert(Base):
    """Safety findings raised by the interaction rule evaluator"""
    __tablename__ = 'interaction_alerts'

    id = Column(String(36), primary_key=True, default=_new_id)
    patient_id = Column(String(64), nullable=False)

    interaction_type = Column(SQLEnum(InteractionType), nullable=False)
    severity = Column(SQLEnum(InteractionSeverity), nullable=False)
    finding_key = Column(String(512), nullable=False)

    description = Column(Text, nullable=False)
    evidence_text = Column(Text)
    recommended_action = Column(Text)

    status = Column(SQLEnum(AlertStatus), nullable=False, default=AlertStatus.ACTIVE)
    requires_acknowledgment = Column(Boolean, default=False)

    overridden_by = Column(String(64))
    override_reason = Column(Text)
    overridden_at = Column(DateTime)

    acknowledged_by = Column(String(64))
    acknowledged_at = Column(DateTime)

    resolved_by = Column(String(64))
    resolution_note = Column(Text)
    resolved_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    related_prescriptions = relationship(
        "Prescription",
        secondary=interaction_alert_prescriptions,
        back_populates="interaction_alerts"
    )

    __table_args__ = (
        Index('idx_alert_patient_status', 'patient_id', 'status'),
        Index('idx_alert_finding', 'patient_id', 'finding_key'),
    )

    @property
    def is_severe_interaction(self) -> bool:
        return self.severity.is_severe and self.status != AlertStatus.OVERRIDDEN

    def __repr__(self):
        return f"<InteractionAlert {self.interaction_type.value} {self.severity.value} {self.status.value}>"

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "interaction_type": self.interaction_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "evidence_text": self.evidence_text,
            "recommended_action": self.recommended_action,
            "status": self.status.value,
            "requires_acknowledgment": self.requires_acknowledgment,
            "related_prescription_ids": [p.id for p in self.related_prescriptions],
            "overridden_by": self.overridden_by,
            "override_reason": self.override_reason,
            "overridden_at": _iso(self.overridden_at),
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "resolved_by": self.resolved_by,
            "resolution_note": self.resolution_note,
            "resolved_at": _iso(self.resolved_at),
            "created_at": _iso(self.created_at),
        }


class PatientMedicationAllergy(Base):
    """Medication allergies recorded for a patient"""
    __tablename__ = 'patient_medication_allergies'

    id = Column(String(36), primary_key=True, default=_new_id)
    patient_id = Column(String(64), nullable=False)

    substance = Column(String(200), nullable=False)
    substance_class = Column(String(200))
    severity = Column(SQLEnum(AllergySeverity), nullable=False, default=AllergySeverity.UNKNOWN)
    status = Column(SQLEnum(AllergyStatus), nullable=False, default=AllergyStatus.ACTIVE)

    reaction = Column(Text)
    onset_date = Column(DateTime)
    notes = Column(Text)
    source = Column(String(100))

    recorded_by = Column(String(64), nullable=False)
    updated_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_allergy_patient_status', 'patient_id', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "substance": self.substance,
            "substance_class": self.substance_class,
            "severity": self.severity.value,
            "status": self.status.value,
            "reaction": self.reaction,
            "onset_date": _iso(self.onset_date),
            "notes": self.notes,
            "source": self.source,
            "recorded_by": self.recorded_by,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class MedicationAdministration(Base):
    """Dosing events recorded against an active prescription"""
    __tablename__ = 'medication_administrations'

    id = Column(String(36), primary_key=True, default=_new_id)
    prescription_id = Column(String(36), ForeignKey('prescriptions.id', ondelete='CASCADE'), nullable=False)
    patient_id = Column(String(64), nullable=False)

    administered_at = Column(DateTime, nullable=False)
    administered_dose = Column(String(100), nullable=False)
    administered_by = Column(String(64), nullable=False)

    notes = Column(Text)
    was_refused = Column(Boolean, default=False)
    refusal_reason = Column(Text)
    was_omitted = Column(Boolean, default=False)
    omission_reason = Column(Text)
    patient_response = Column(Text)
    adverse_reaction = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prescription = relationship("Prescription", back_populates="administrations")

    __table_args__ = (
        Index('idx_administration_patient_time', 'patient_id', 'administered_at'),
        Index('idx_administration_prescription', 'prescription_id'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "patient_id": self.patient_id,
            "administered_at": _iso(self.administered_at),
            "administered_dose": self.administered_dose,
            "administered_by": self.administered_by,
            "notes": self.notes,
            "was_refused": self.was_refused,
            "refusal_reason": self.refusal_reason,
            "was_omitted": self.was_omitted,
            "omission_reason": self.omission_reason,
            "patient_response": self.patient_response,
            "adverse_reaction": self.adverse_reaction,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
