"""
Tests for the interaction rule evaluator.
"""
import json

import pytest

from medsafety.database import (
    InteractionAlert, InteractionType, InteractionSeverity, AlertStatus, AllergyStatus
)
from medsafety.services.drug_interaction_service import DrugInteractionService
from medsafety.services.interaction_knowledge import StaticInteractionKnowledgeBase


class TestAllergyCheck:

    def test_allergy_match_is_contraindication(self, test_db, interaction_service, make_allergy):
        make_allergy(substance="Penicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V Potassium")

        assert result.has_severe_interactions is True
        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.interaction_type == InteractionType.DRUG_ALLERGY
        assert alert.severity == InteractionSeverity.CONTRAINDICATION
        assert alert.requires_acknowledgment is True
        assert alert.status == AlertStatus.ACTIVE
        assert "Penicillin" in alert.description

    def test_substance_class_match(self, test_db, interaction_service, make_allergy):
        make_allergy(substance="Amoxil", substance_class="Penicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "penicillin g")

        assert result.has_severe_interactions is True
        assert result.alerts[0].interaction_type == InteractionType.DRUG_ALLERGY

    def test_inactive_allergy_ignored(self, test_db, interaction_service, make_allergy):
        make_allergy(substance="Penicillin", status=AllergyStatus.INACTIVE)

        result = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V")

        assert result.has_severe_interactions is False
        assert result.alerts == []

    def test_other_patients_allergy_ignored(self, test_db, interaction_service, make_allergy):
        make_allergy(patient_id="patient-2", substance="Penicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V")

        assert result.alerts == []


class TestDrugDrugCheck:

    def test_non_interacting_medication_yields_nothing(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Metformin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Amoxicillin")

        assert result.has_severe_interactions is False
        assert result.alerts == []

    def test_severe_pair(self, test_db, interaction_service, make_prescription):
        warfarin = make_prescription(medication_name="Warfarin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Fluconazole")

        assert result.has_severe_interactions is True
        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.interaction_type == InteractionType.DRUG_DRUG
        assert alert.severity == InteractionSeverity.SEVERE
        assert alert.requires_acknowledgment is True
        assert warfarin.id in [p.id for p in alert.related_prescriptions]

    def test_plain_table_hit_is_moderate(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Warfarin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Aspirin 81mg")

        assert result.has_severe_interactions is False
        assert len(result.alerts) == 1
        assert result.alerts[0].severity == InteractionSeverity.MODERATE
        assert result.alerts[0].requires_acknowledgment is False

    def test_pair_matched_in_either_order(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Fluconazole")

        result = interaction_service.check_interactions(test_db, "patient-1", "Warfarin Sodium")

        assert result.has_severe_interactions is True

    def test_pending_prescriptions_not_considered(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Warfarin", approve=False)

        result = interaction_service.check_interactions(test_db, "patient-1", "Fluconazole")

        assert result.alerts == []

    def test_same_catalog_id_skipped(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Warfarin", medication_id="med-100")

        result = interaction_service.check_interactions(
            test_db, "patient-1", "Fluconazole", medication_id="med-100"
        )

        assert result.alerts == []

    def test_rechecked_prescription_not_compared_with_itself(self, test_db, interaction_service, make_prescription):
        warfarin = make_prescription(medication_name="Warfarin")

        result = interaction_service.check_interactions(
            test_db, "patient-1", "Warfarin", prescription_id=warfarin.id
        )

        assert result.alerts == []


class TestDuplicateTherapy:

    def test_duplicate_is_moderate_and_not_blocking(self, test_db, interaction_service, make_prescription):
        existing = make_prescription(medication_name="Amoxicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "AMOXICILLIN")

        assert result.has_severe_interactions is False
        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.interaction_type == InteractionType.DUPLICATE_THERAPY
        assert alert.severity == InteractionSeverity.MODERATE
        assert alert.requires_acknowledgment is True
        assert existing.id in alert.evidence_text

    def test_one_alert_for_several_duplicates(self, test_db, interaction_service, make_prescription):
        make_prescription(medication_name="Amoxicillin")
        make_prescription(medication_name="Amoxicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Amoxicillin")

        duplicates = [a for a in result.alerts if a.interaction_type == InteractionType.DUPLICATE_THERAPY]
        assert len(duplicates) == 1


class TestAlertPersistence:

    def test_alerts_committed_before_return(self, test_db, interaction_service, make_allergy):
        make_allergy(substance="Penicillin")

        result = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V")
        alert_id = result.alerts[0].id
        test_db.rollback()

        assert test_db.get(InteractionAlert, alert_id) is not None

    def test_all_findings_reported_together(self, test_db, interaction_service, make_prescription, make_allergy):
        make_allergy(substance="Warfarin")
        make_prescription(medication_name="Fluconazole")

        result = interaction_service.check_interactions(test_db, "patient-1", "Warfarin")

        types = [a.interaction_type for a in result.alerts]
        assert types == [InteractionType.DRUG_ALLERGY, InteractionType.DRUG_DRUG]


class TestOverrides:

    def test_overridden_finding_no_longer_severe(self, test_db, interaction_service, alert_service, make_prescription):
        make_prescription(medication_name="Warfarin")
        first = interaction_service.check_interactions(test_db, "patient-1", "Fluconazole")
        alert_service.override(test_db, first.alerts[0].id, "dr-wilson", "Benefit outweighs risk")

        second = interaction_service.check_interactions(test_db, "patient-1", "Fluconazole")

        assert second.has_severe_interactions is False
        assert [a.id for a in second.alerts] == [first.alerts[0].id]
        assert test_db.query(InteractionAlert).count() == 1

    def test_overrides_ignored_when_disabled(self, test_db, alert_service, allergy_registry, make_prescription):
        service = DrugInteractionService(
            knowledge_base=StaticInteractionKnowledgeBase.default(),
            allergy_registry=allergy_registry,
            alert_service=alert_service,
            honor_overrides=False
        )
        make_prescription(medication_name="Warfarin")
        first = service.check_interactions(test_db, "patient-1", "Fluconazole")
        alert_service.override(test_db, first.alerts[0].id, "dr-wilson", "Benefit outweighs risk")

        second = service.check_interactions(test_db, "patient-1", "Fluconazole")

        assert second.has_severe_interactions is True
        assert second.alerts[0].id != first.alerts[0].id

    def test_acknowledged_finding_still_severe(self, test_db, interaction_service, alert_service, make_allergy):
        make_allergy(substance="Penicillin")
        first = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V")
        alert_service.acknowledge(test_db, first.alerts[0].id, "dr-wilson")

        second = interaction_service.check_interactions(test_db, "patient-1", "Penicillin V")

        assert second.has_severe_interactions is True


class TestKnowledgeBase:

    def test_explicit_mild_pair(self):
        kb = StaticInteractionKnowledgeBase(
            {"warfarin": ["aspirin"]},
            pair_severities={("warfarin", "aspirin"): InteractionSeverity.MILD}
        )

        finding = kb.find_interaction("Aspirin", "Warfarin")

        assert finding.severity == InteractionSeverity.MILD
        assert finding.matched_pair == ("warfarin", "aspirin")

    def test_no_match(self):
        assert StaticInteractionKnowledgeBase.default().find_interaction("Metformin", "Amoxicillin") is None

    def test_load_from_json(self, tmp_path):
        rules = tmp_path / "rules.json"
        rules.write_text(json.dumps({
            "interactions": {"Clopidogrel": ["Omeprazole"]},
            "severe_pairs": [["clopidogrel", "omeprazole"]],
        }))

        kb = StaticInteractionKnowledgeBase.from_json(rules)

        assert kb.find_interaction("omeprazole 20mg", "clopidogrel").severity == InteractionSeverity.SEVERE
        assert kb.find_interaction("warfarin", "aspirin") is None

    @pytest.mark.parametrize("severity", [InteractionSeverity.CONTRAINDICATION, InteractionSeverity.SEVERE])
    def test_severe_ranks(self, severity):
        assert severity.is_severe

    @pytest.mark.parametrize("severity", [
        InteractionSeverity.MODERATE, InteractionSeverity.MILD, InteractionSeverity.UNKNOWN
    ])
    def test_non_severe_ranks(self, severity):
        assert not severity.is_severe
