"""
Interaction Knowledge Base - Lookup tables behind the drug-drug check

The built-in tables are a small placeholder. Swap them by
pointing INTERACTION_RULES_PATH at a JSON file, or by passing another
InteractionKnowledgeBase to DrugInteractionService.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from medsafety.config import settings
from medsafety.database.models import InteractionSeverity

logger = logging.getLogger(__name__)


DEFAULT_INTERACTIONS: Dict[str, List[str]] = {
    'warfarin': ['aspirin', 'ibuprofen', 'naproxen', 'fluconazole', 'amiodarone', 'ciprofloxacin'],
    'simvastatin': ['clarithromycin', 'itraconazole', 'ketoconazole', 'erythromycin', 'gemfibrozil'],
    'lisinopril': ['spironolactone', 'potassium supplements', 'lithium'],
    'digoxin': ['amiodarone', 'verapamil', 'clarithromycin'],
    'methotrexate': ['trimethoprim', 'sulfamethoxazole', 'nsaids'],
}

DEFAULT_SEVERE_PAIRS: List[Tuple[str, str]] = [
    ('warfarin', 'fluconazole'),
    ('simvastatin', 'itraconazole'),
    ('methotrexate', 'trimethoprim'),
]


@dataclass
class InteractionFinding:
    """A table hit for one pair of medications"""
    drug1: str
    drug2: str
    matched_pair: Tuple[str, str]
    severity: InteractionSeverity


def _pair_matches(name1: str, name2: str, term1: str, term2: str) -> bool:
    """Unordered substring match of a table pair against two medication names"""
    return (term1 in name1 and term2 in name2) or (term1 in name2 and term2 in name1)


class InteractionKnowledgeBase:
    """Interface consumed by the rule evaluator"""

    def find_interaction(self, drug1: str, drug2: str) -> Optional[InteractionFinding]:
        raise NotImplementedError


class StaticInteractionKnowledgeBase(InteractionKnowledgeBase):
    """
    Table-driven knowledge base

    - interactions: base medication -> medications it interacts with
    - severe_pairs: pairs that escalate a hit to SEVERE
    - pair_severities: explicit severity for specific pairs, checked first
    - default_severity: severity of any other table hit
    """

    def __init__(
        self,
        interactions: Dict[str, Iterable[str]],
        severe_pairs: Iterable[Tuple[str, str]] = (),
        pair_severities: Optional[Dict[Tuple[str, str], InteractionSeverity]] = None,
        default_severity: InteractionSeverity = InteractionSeverity.MODERATE
    ):
        self.interactions = {
            base.lower(): [drug.lower() for drug in drugs]
            for base, drugs in interactions.items()
        }
        self.severe_pairs = [(a.lower(), b.lower()) for a, b in severe_pairs]
        self.pair_severities = {
            (a.lower(), b.lower()): severity
            for (a, b), severity in (pair_severities or {}).items()
        }
        self.default_severity = default_severity

    @classmethod
    def default(cls, default_severity: InteractionSeverity = InteractionSeverity.MODERATE):
        return cls(DEFAULT_INTERACTIONS, DEFAULT_SEVERE_PAIRS, default_severity=default_severity)

    @classmethod
    def from_json(cls, path: Path) -> "StaticInteractionKnowledgeBase":
        """
        Load tables from a JSON document:

            {
              "interactions": {"warfarin": ["aspirin", ...]},
              "severe_pairs": [["warfarin", "fluconazole"]],
              "pair_severities": [{"drugs": ["warfarin", "aspirin"], "severity": "MILD"}],
              "default_severity": "MODERATE"
            }
        """
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)

        pair_severities = {
            tuple(entry["drugs"]): InteractionSeverity(entry["severity"])
            for entry in data.get("pair_severities", [])
        }
        knowledge_base = cls(
            interactions=data.get("interactions", {}),
            severe_pairs=[tuple(pair) for pair in data.get("severe_pairs", [])],
            pair_severities=pair_severities,
            default_severity=InteractionSeverity(data.get("default_severity", settings.DDI_DEFAULT_SEVERITY))
        )
        logger.info(f"Loaded interaction rules from {path}: {len(knowledge_base.interactions)} base medications")
        return knowledge_base

    def find_interaction(self, drug1: str, drug2: str) -> Optional[InteractionFinding]:
        d1 = drug1.lower()
        d2 = drug2.lower()

        for base, interacting in self.interactions.items():
            for other in interacting:
                if _pair_matches(d1, d2, base, other):
                    return InteractionFinding(
                        drug1=drug1,
                        drug2=drug2,
                        matched_pair=(base, other),
                        severity=self._determine_severity(d1, d2)
                    )
        return None

    def _determine_severity(self, d1: str, d2: str) -> InteractionSeverity:
        for (term1, term2), severity in self.pair_severities.items():
            if _pair_matches(d1, d2, term1, term2):
                return severity

        for term1, term2 in self.severe_pairs:
            if _pair_matches(d1, d2, term1, term2):
                return InteractionSeverity.SEVERE

        return self.default_severity


_knowledge_base = None


def get_knowledge_base() -> InteractionKnowledgeBase:
    """Get the configured knowledge base instance"""
    global _knowledge_base
    if _knowledge_base is None:
        if settings.INTERACTION_RULES_PATH:
            _knowledge_base = StaticInteractionKnowledgeBase.from_json(settings.INTERACTION_RULES_PATH)
        else:
            _knowledge_base = StaticInteractionKnowledgeBase.default(
                InteractionSeverity(settings.DDI_DEFAULT_SEVERITY)
            )
    return _knowledge_base
