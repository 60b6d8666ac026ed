"""
Concurrency tests: keyed locks, serialized evaluation, refill counters and
administrations racing a cancel.

These run against an on-disk SQLite database so that every worker thread
gets its own connection.
"""
import threading
import time

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from medsafety.database import Base, MedicationAdministration, Prescription, PrescriptionStatus
from medsafety.models import AdministrationCreate, PrescriptionUpdate
from medsafety.services.exceptions import NoRefillsError, ConcurrentUpdateError, InvalidStateError
from medsafety.services.locking import KeyedLockRegistry

from conftest import prescription_request, PRESCRIBER, PHARMACIST


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def run_in_threads(count, target):
    """Start `count` threads on a shared barrier and collect what each returns or raises"""
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def worker(index):
        barrier.wait()
        try:
            outcomes[index] = target(index)
        except Exception as exc:
            outcomes[index] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


class TestKeyedLockRegistry:

    def test_entries_released_after_use(self):
        registry = KeyedLockRegistry("test")

        with registry.hold("a"):
            with registry.hold("b"):
                assert len(registry) == 2

        assert len(registry) == 0

    def test_reentrant_for_same_thread(self):
        registry = KeyedLockRegistry("test")

        with registry.hold("a"):
            with registry.hold("a"):
                assert len(registry) == 1

    def test_same_key_serialized(self):
        registry = KeyedLockRegistry("test")
        inside = []
        overlaps = []

        def critical(_):
            with registry.hold("patient-1"):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(1)
                time.sleep(0.01)
                inside.pop()

        run_in_threads(8, critical)

        assert overlaps == []
        assert len(registry) == 0


class TestSerializedEvaluation:

    def test_parallel_creates_for_one_patient_do_not_overlap(
        self, file_sessions, prescription_service, interaction_service, monkeypatch
    ):
        evaluate = interaction_service.check_interactions
        inside = []
        overlaps = []

        def tracked(*args, **kwargs):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(1)
            time.sleep(0.01)
            try:
                return evaluate(*args, **kwargs)
            finally:
                inside.pop()

        monkeypatch.setattr(interaction_service, "check_interactions", tracked)
        medications = ["Amoxicillin", "Metformin", "Lisinopril", "Atorvastatin"]

        def create(index):
            session = file_sessions()
            try:
                return prescription_service.create(
                    session, prescription_request(medication_name=medications[index]), PRESCRIBER
                ).status
            finally:
                session.close()

        outcomes = run_in_threads(len(medications), create)

        assert overlaps == []
        assert outcomes == [PrescriptionStatus.PENDING_APPROVAL] * len(medications)
        check = file_sessions()
        assert check.query(Prescription).filter(Prescription.patient_id == "patient-1").count() == 4
        check.close()

    def test_concurrent_activation_lets_only_one_through(self, file_sessions, prescription_service):
        setup = file_sessions()
        warfarin = prescription_service.create(setup, prescription_request(medication_name="Warfarin"), PRESCRIBER)
        fluconazole = prescription_service.create(setup, prescription_request(medication_name="Fluconazole"), PRESCRIBER)
        ids = [warfarin.id, fluconazole.id]
        setup.close()

        def activate(index):
            session = file_sessions()
            try:
                return prescription_service.update(
                    session, ids[index], PrescriptionUpdate(status=PrescriptionStatus.ACTIVE), PRESCRIBER
                ).status
            finally:
                session.close()

        outcomes = run_in_threads(2, activate)

        assert sorted(type(o).__name__ for o in outcomes) == ["PrescriptionStatus", "RejectedError"]
        check = file_sessions()
        statuses = sorted(p.status.value for p in check.query(Prescription).all())
        check.close()
        assert statuses == ["ACTIVE", "PENDING_APPROVAL"]


class TestRefillCounter:

    def test_parallel_refills_never_go_below_zero(self, file_sessions, prescription_service):
        setup = file_sessions()
        prescription = prescription_service.create(setup, prescription_request(refills_allowed=2), PRESCRIBER)
        prescription_service.approve(setup, prescription.id, PHARMACIST)
        prescription_id = prescription.id
        setup.close()

        def refill(_):
            session = file_sessions()
            try:
                return prescription_service.refill(session, prescription_id, PHARMACIST).refills_remaining
            finally:
                session.close()

        outcomes = run_in_threads(5, refill)

        assert sorted(o for o in outcomes if isinstance(o, int)) == [0, 1]
        assert sum(isinstance(o, NoRefillsError) for o in outcomes) == 3
        check = file_sessions()
        assert check.get(Prescription, prescription_id).refills_remaining == 0
        check.close()

    def test_stale_write_reported(self, file_sessions, prescription_service):
        setup = file_sessions()
        prescription = prescription_service.create(setup, prescription_request(refills_allowed=2), PRESCRIBER)
        prescription_service.approve(setup, prescription.id, PHARMACIST)
        prescription_id = prescription.id
        setup.close()

        stale_session = file_sessions()
        stale = stale_session.get(Prescription, prescription_id)

        other = file_sessions()
        prescription_service.refill(other, prescription_id, PHARMACIST)
        other.close()

        # The stale copy still carries the old version number
        stale.refills_remaining = 0
        with pytest.raises(ConcurrentUpdateError):
            prescription_service._commit(stale_session, stale)
        stale_session.close()


class TestAdministrationAgainstCancel:

    def test_cancel_waits_for_recording_in_progress(
        self, file_sessions, prescription_service, administration_service
    ):
        setup = file_sessions()
        prescription = prescription_service.create(setup, prescription_request(), PRESCRIBER)
        prescription_service.approve(setup, prescription.id, PHARMACIST)
        prescription_id = prescription.id
        setup.close()

        def cancel():
            session = file_sessions()
            try:
                prescription_service.cancel(session, prescription_id, "Stopped", PRESCRIBER)
            finally:
                session.close()

        canceller = threading.Thread(target=cancel)
        cancel_blocked = []
        session = file_sessions()

        @event.listens_for(session, "before_flush")
        def cancel_between_check_and_insert(flush_session, flush_context, instances):
            if canceller.ident is None:
                canceller.start()
                canceller.join(timeout=0.5)
                cancel_blocked.append(canceller.is_alive())

        record = administration_service.create(
            session,
            AdministrationCreate(prescription_id=prescription_id, patient_id="patient-1", administered_dose="500 mg"),
            actor_id="nurse-joy"
        )
        recorded_at = record.created_at
        session.close()
        canceller.join(timeout=30)

        assert cancel_blocked == [True]
        check = file_sessions()
        cancelled = check.get(Prescription, prescription_id)
        assert cancelled.status == PrescriptionStatus.CANCELLED
        assert check.query(MedicationAdministration).count() == 1
        assert cancelled.updated_at >= recorded_at
        check.close()

    def test_recording_after_cancel_rejected(self, file_sessions, prescription_service, administration_service):
        setup = file_sessions()
        prescription = prescription_service.create(setup, prescription_request(), PRESCRIBER)
        prescription_service.approve(setup, prescription.id, PHARMACIST)
        prescription_id = prescription.id

        stale = file_sessions()
        stale.get(Prescription, prescription_id)

        prescription_service.cancel(setup, prescription_id, "Stopped", PRESCRIBER)
        setup.close()

        with pytest.raises(InvalidStateError):
            administration_service.create(
                stale,
                AdministrationCreate(prescription_id=prescription_id, patient_id="patient-1", administered_dose="500 mg"),
                actor_id="nurse-joy"
            )
        assert stale.query(MedicationAdministration).count() == 0
        stale.close()
