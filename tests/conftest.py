"""
Pytest configuration and shared fixtures for the medication safety tests.

This module provides:
- Test database setup (SQLite in-memory)
- Service instances wired to the default interaction tables
- FastAPI TestClient configuration
- Prescription and allergy factories
"""

import os
from typing import Generator

# Keep the app's startup hook away from the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from medsafety.database import Base, get_db
from medsafety.models import PrescriptionCreate, AllergyCreate
from medsafety.services.administration_service import AdministrationService
from medsafety.services.alert_service import AlertService
from medsafety.services.allergy_registry import AllergyRegistry
from medsafety.services.drug_interaction_service import DrugInteractionService
from medsafety.services.interaction_knowledge import StaticInteractionKnowledgeBase
from medsafety.services.prescription_service import PrescriptionService


PRESCRIBER = "dr-house"
PHARMACIST = "pharm-cuddy"


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

def _enable_foreign_keys(engine):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def test_db(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def alert_service():
    return AlertService()


@pytest.fixture
def allergy_registry():
    return AllergyRegistry()


@pytest.fixture
def interaction_service(alert_service, allergy_registry):
    return DrugInteractionService(
        knowledge_base=StaticInteractionKnowledgeBase.default(),
        allergy_registry=allergy_registry,
        alert_service=alert_service,
        honor_overrides=True
    )


@pytest.fixture
def prescription_service(interaction_service):
    return PrescriptionService(interaction_service=interaction_service)


@pytest.fixture
def administration_service():
    return AdministrationService()


# =============================================================================
# DATA FACTORIES
# =============================================================================

def prescription_request(patient_id="patient-1", medication_name="Amoxicillin", **overrides) -> PrescriptionCreate:
    data = {
        "patient_id": patient_id,
        "prescriber_id": PRESCRIBER,
        "medication_name": medication_name,
        "strength": "500 mg",
        "dosage_form": "capsule",
        "quantity": 30,
        "quantity_unit": "capsule",
        "route": "ORAL",
        "frequency": "TID",
        "refills_allowed": 2,
    }
    data.update(overrides)
    return PrescriptionCreate(**data)


@pytest.fixture
def rx_request():
    return prescription_request


@pytest.fixture
def make_prescription(test_db, prescription_service):
    """Create a prescription, approving it unless told otherwise."""
    def _make(patient_id="patient-1", medication_name="Amoxicillin", approve=True, **overrides):
        prescription = prescription_service.create(
            test_db,
            prescription_request(patient_id, medication_name, **overrides),
            actor_id=PRESCRIBER
        )
        if approve:
            prescription = prescription_service.approve(test_db, prescription.id, PHARMACIST)
        return prescription
    return _make


@pytest.fixture
def make_allergy(test_db, allergy_registry):
    def _make(patient_id="patient-1", substance="Penicillin", **overrides):
        data = {"patient_id": patient_id, "substance": substance, "reaction": "Hives"}
        data.update(overrides)
        return allergy_registry.create(test_db, AllergyCreate(**data), actor_id=PRESCRIBER)
    return _make


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def app_instance():
    from main import app as fastapi_app
    return fastapi_app


@pytest.fixture(scope="function")
def override_get_db(test_db):
    """Override the get_db dependency to use the test database."""
    def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture(scope="function")
def app(app_instance, override_get_db):
    app_instance.dependency_overrides[get_db] = override_get_db
    yield app_instance
    app_instance.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"X-User-Id": PRESCRIBER}


@pytest.fixture
def pharmacist_headers():
    return {"X-User-Id": PHARMACIST}
