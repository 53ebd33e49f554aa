# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from typing import Dict, List, Optional, Tuple

from rich.console import Console

from .config import settings
from .exceptions import InvalidInputError
from .models import (
    Concept, Domain, LabTestPanelRow, LabTestSearchRow, SearchResultRow,
)
from .store import CONTAINED_IN_PANEL, MAPS_TO, PANEL_CONTAINS, ConceptStore
from .vocabulary_policy import DRUG_SEARCH_CLASSES, allowed_vocabularies, is_known_domain

console = Console()

LAB_TEST_VOCABULARY = "LOINC"
LAB_TEST_CLASSES = frozenset({"Lab Test", "Clinical Observation"})

# LOINC axis -> relationship naming it
LAB_TEST_AXES = {
    "property": "Has property",
    "scale": "Has scale type",
    "system": "Has system",
    "time": "Has time aspect",
}


def _rank(term: str, concepts: List[Concept]) -> List[Concept]:
    """Closest concept name length to the term first; concept id breaks ties."""
    return sorted(concepts, key=lambda c: (abs(len(term) - len(c.concept_name)), c.concept_id))


class ConceptSearcher:
    """Free-text concept search within a domain and its allowed vocabularies."""

    def __init__(self, store: ConceptStore, limit: Optional[int] = None):
        self.store = store
        self.limit = limit or settings.search_result_limit

    def _validate_term(self, term) -> str:
        if not isinstance(term, str) or len(term.strip()) < settings.min_search_term_length:
            raise InvalidInputError(
                f"Search term must be at least {settings.min_search_term_length} characters"
            )
        return term.strip()

    def search(self, term, domain_id) -> List[SearchResultRow]:
        term = self._validate_term(term)
        if not domain_id:
            raise InvalidInputError("Domain ID is required")
        domain_id = domain_id.value if isinstance(domain_id, Domain) else domain_id
        if not is_known_domain(domain_id):
            raise InvalidInputError(f"Unrecognized domain: {domain_id}")

        classes = DRUG_SEARCH_CLASSES if domain_id == Domain.DRUG.value else None
        candidates = self.store.find_concepts(term, domain_id, allowed_vocabularies(domain_id), classes)

        rows: List[SearchResultRow] = []
        ranked = _rank(term, candidates)[:self.limit]
        mappings = self.store.related_from_many([c.concept_id for c in ranked], MAPS_TO)
        for concept in ranked:
            for standard in mappings.get(concept.concept_id) or [None]:
                if standard is not None and standard.standard_concept != "S":
                    standard = None
                rows.append(self._row(concept, standard))

        rows = rows[:self.limit]
        console.log(f"Search '{term}' in {domain_id}: {len(candidates)} candidates, returning {len(rows)} rows.")
        return rows

    @staticmethod
    def _row(concept: Concept, standard: Optional[Concept]) -> SearchResultRow:
        return SearchResultRow(
            standard_name=standard.concept_name if standard else None,
            std_concept_id=standard.concept_id if standard else None,
            standard_code=standard.concept_code if standard else None,
            standard_vocabulary=standard.vocabulary_id if standard else None,
            concept_class_id=standard.concept_class_id if standard else None,
            search_result=concept.concept_name,
            searched_concept_id=concept.concept_id,
            searched_code=concept.concept_code,
            searched_vocabulary=concept.vocabulary_id,
            searched_concept_class_id=concept.concept_class_id,
            searched_term=f"{concept.concept_id} {concept.concept_code} {concept.concept_name}",
        )

    def search_lab_tests(self, term) -> List[LabTestSearchRow]:
        """LOINC lab tests and panels matching the term, with their LOINC axes."""
        term = self._validate_term(term)
        candidates = self.store.find_concepts(
            term, Domain.MEASUREMENT.value, [LAB_TEST_VOCABULARY], LAB_TEST_CLASSES
        )
        rows = []
        ranked = _rank(term, candidates)[:self.limit]
        ids = [c.concept_id for c in ranked]
        axis_targets = {
            axis: self.store.related_from_many(ids, relationship_id)
            for axis, relationship_id in LAB_TEST_AXES.items()
        }
        panel_members = self.store.related_from_many(ids, PANEL_CONTAINS)
        panels = self._panels_containing(ids)
        for concept in ranked:
            axes = {}
            for axis, targets_by_id in axis_targets.items():
                targets = targets_by_id.get(concept.concept_id)
                axes[axis] = targets[0].concept_name if targets else None
            rows.append(LabTestSearchRow(
                lab_test_type="Panel" if concept.concept_id in panel_members else "Lab Test",
                std_concept_id=concept.concept_id,
                search_result=concept.concept_name,
                searched_code=concept.concept_code,
                searched_concept_class_id=concept.concept_class_id,
                vocabulary_id=concept.vocabulary_id,
                panel_count=len(panels.get(concept.concept_id, [])),
                **axes,
            ))
        console.log(f"Lab test search '{term}': returning {len(rows)} rows.")
        return rows

    def search_lab_test_panels(self, lab_test_concept_ids) -> List[LabTestPanelRow]:
        """Panels that contain any of the given lab tests."""
        if not isinstance(lab_test_concept_ids, list) or not lab_test_concept_ids:
            raise InvalidInputError("labTestConceptIds array is required")
        for concept_id in lab_test_concept_ids:
            if isinstance(concept_id, bool) or not isinstance(concept_id, int) or concept_id <= 0:
                raise InvalidInputError(f"Lab test concept IDs must be positive integers, got {concept_id!r}")

        rows: Dict[Tuple[int, int], LabTestPanelRow] = {}
        panels = self._panels_containing(lab_test_concept_ids)
        for lab_test_id in lab_test_concept_ids:
            for panel in panels.get(lab_test_id, []):
                rows.setdefault((panel.concept_id, lab_test_id), LabTestPanelRow(
                    std_concept_id=panel.concept_id,
                    lab_test_concept_id=lab_test_id,
                    search_result=panel.concept_name,
                    searched_code=panel.concept_code,
                    searched_concept_class_id=panel.concept_class_id,
                    vocabulary_id=panel.vocabulary_id,
                ))
        result = sorted(rows.values(), key=lambda r: (r.search_result, r.std_concept_id, r.lab_test_concept_id))
        console.log(f"Panel search for {len(lab_test_concept_ids)} lab tests: {len(result)} rows.")
        return result

    def _panels_containing(self, lab_test_ids: List[int]) -> Dict[int, List[Concept]]:
        """Panels of each lab test, from either direction of the panel edge."""
        found: Dict[int, Dict[int, Concept]] = {}
        for lookup, relationship_id in (
            (self.store.related_from_many, CONTAINED_IN_PANEL),
            (self.store.related_to_many, PANEL_CONTAINS),
        ):
            for lab_test_id, panels in lookup(lab_test_ids, relationship_id).items():
                for panel in panels:
                    found.setdefault(lab_test_id, {}).setdefault(panel.concept_id, panel)
        return {
            lab_test_id: [panels[cid] for cid in sorted(panels)]
            for lab_test_id, panels in found.items()
        }
