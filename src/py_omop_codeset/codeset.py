# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Builds code sets: the terminal codes reachable from one or more anchor concepts.

For every anchor the builder walks its descendants through the closure index
(or just the anchor itself for direct and lab-test builds), collects the codes
that map into each descendant, labels drugs with their ingredient-count based
combination flag and dose form group, and finally deduplicates across anchors.
"""
from concurrent.futures import ThreadPoolExecutor
from itertools import repeat
from typing import Dict, Iterable, List, Optional, Tuple

from rich.console import Console

from .config import settings
from .exceptions import InvalidInputError
from .models import (
    BuildType, CodeSetRow, CombinationFlag, ComboFilter, Concept, Domain, LabTestAttribute,
)
from .store import HAS_DOSE_FORM, MAPS_TO, ConceptStore
from .vocabulary_policy import (
    INGREDIENT_CLASS, MULTIPLE_INGREDIENTS_CLASS, allowed_vocabularies, dose_form_group,
    passes_codeset_class_rule,
)

console = Console()

LAB_TEST_ATTRIBUTE_RELATIONSHIPS = (
    "Has component", "Has property", "Has scale type", "Has system", "Has time aspect", "Has method",
)


def validate_concept_ids(concept_ids) -> List[int]:
    if not isinstance(concept_ids, list) or not concept_ids:
        raise InvalidInputError("At least one concept ID is required")
    for concept_id in concept_ids:
        if isinstance(concept_id, bool) or not isinstance(concept_id, int) or concept_id <= 0:
            raise InvalidInputError(f"Concept IDs must be positive integers, got {concept_id!r}")
    return concept_ids


def parse_combo_filter(value) -> ComboFilter:
    if value is None:
        return ComboFilter.ALL
    if isinstance(value, ComboFilter):
        return value
    try:
        return ComboFilter(str(value).upper())
    except ValueError:
        raise InvalidInputError(f"combo_filter must be one of ALL, SINGLE, COMBINATION, got {value!r}")


def parse_build_type(value) -> BuildType:
    if value is None:
        return BuildType.HIERARCHICAL
    if isinstance(value, BuildType):
        return value
    try:
        return BuildType(str(value).lower())
    except ValueError:
        raise InvalidInputError(f"build_type must be one of hierarchical, direct, labtest, got {value!r}")


def deduplicate(rows: Iterable[CodeSetRow]) -> List[CodeSetRow]:
    """Keeps the first row for each (vocabulary, code, name, concept id, class)."""
    seen: Dict[Tuple, CodeSetRow] = {}
    for row in rows:
        seen.setdefault(row.dedup_key(), row)
    return list(seen.values())


def combination_flag_for(ingredient_count: int) -> Optional[CombinationFlag]:
    if ingredient_count > 1:
        return CombinationFlag.COMBINATION
    if ingredient_count == 1:
        return CombinationFlag.SINGLE
    return None


class CodeSetBuilder:
    """
    Turns anchor concept ids into a deduplicated list of CodeSetRow.
    Anchors are independent of each other and are expanded concurrently.
    """

    def __init__(self, store: ConceptStore, max_workers: Optional[int] = None):
        self.store = store
        self.max_workers = max_workers or settings.max_parallel_workers

    def build(self, concept_ids, combo_filter=ComboFilter.ALL, build_type=BuildType.HIERARCHICAL) -> List[CodeSetRow]:
        concept_ids = validate_concept_ids(concept_ids)
        combo_filter = parse_combo_filter(combo_filter)
        build_type = parse_build_type(build_type)
        console.log(
            f"{build_type.value.capitalize()} build for {len(concept_ids)} concepts "
            f"(combo filter: {combo_filter.value})"
        )

        if self.max_workers > 1 and len(concept_ids) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(concept_ids))) as executor:
                # map() yields in anchor order, which keeps the first-occurrence dedup deterministic.
                partials = list(executor.map(
                    self._build_anchor, concept_ids, repeat(combo_filter), repeat(build_type)
                ))
        else:
            partials = [self._build_anchor(cid, combo_filter, build_type) for cid in concept_ids]

        all_rows = [row for partial in partials for row in partial]
        deduped = deduplicate(all_rows)
        console.log(f"Deduplicated from {len(all_rows)} to {len(deduped)} unique concepts.")
        return deduped

    def _build_anchor(self, anchor_id: int, combo_filter: ComboFilter, build_type: BuildType) -> List[CodeSetRow]:
        anchor = self.store.get_concept(anchor_id)
        if anchor is None:
            console.log(f"[yellow]Concept {anchor_id} not found, skipping.[/yellow]")
            return []

        vocabularies = allowed_vocabularies(anchor.domain_id)
        if build_type == BuildType.HIERARCHICAL:
            descendants = self.store.descendants_of(anchor_id)
        else:
            descendants = [(anchor, 0)]

        # One batched lookup per join instead of one per descendant.
        mapped = self.store.related_to_many([d.concept_id for d, _ in descendants], MAPS_TO)
        children_by_descendant: Dict[int, List[Concept]] = {}
        for descendant, _ in descendants:
            children = [
                child for child in mapped.get(descendant.concept_id, [])
                if child.domain_id == anchor.domain_id
                and child.vocabulary_id in vocabularies
                and passes_codeset_class_rule(child)
            ]
            if children:
                children_by_descendant[descendant.concept_id] = children

        mapped_ids = list(children_by_descendant)
        ingredient_counts = self.store.ancestor_class_counts(mapped_ids, INGREDIENT_CLASS)
        dose_forms_by_descendant = self.store.related_from_many(mapped_ids, HAS_DOSE_FORM)
        attributes_by_child: Dict[int, List[LabTestAttribute]] = {}
        if build_type == BuildType.LABTEST:
            child_ids = [c.concept_id for children in children_by_descendant.values() for c in children]
            attributes_by_child = self._lab_test_attributes(child_ids)

        ranked: List[Tuple[int, CodeSetRow]] = []
        for descendant, distance in descendants:
            children = children_by_descendant.get(descendant.concept_id)
            if not children:
                continue

            ingredient_flag = combination_flag_for(ingredient_counts.get(descendant.concept_id, 0))
            dose_forms = dose_forms_by_descendant.get(descendant.concept_id) or [None]

            for child in children:
                if child.concept_class_id == MULTIPLE_INGREDIENTS_CLASS:
                    flag = CombinationFlag.COMBINATION
                else:
                    flag = ingredient_flag
                if not self._passes_combo_filter(child, flag, combo_filter):
                    continue
                if build_type == BuildType.LABTEST:
                    relationships = attributes_by_child.get(child.concept_id, [])
                else:
                    relationships = None
                for dose_form in dose_forms:
                    ranked.append((distance, CodeSetRow(
                        root_concept_name=anchor.concept_name,
                        child_vocabulary_id=child.vocabulary_id,
                        child_code=child.concept_code,
                        child_name=child.concept_name,
                        child_concept_id=child.concept_id,
                        concept_class_id=child.concept_class_id,
                        combination_flag=flag,
                        dose_form=dose_form.concept_name if dose_form else None,
                        dose_form_group=dose_form_group(dose_form.concept_name) if dose_form else None,
                        relationships=relationships,
                    )))

        # Vocabulary descending, then nearest to the anchor first.
        ranked.sort(key=lambda item: (item[0], item[1].child_concept_id))
        ranked.sort(key=lambda item: item[1].child_vocabulary_id, reverse=True)
        console.log(f"Concept {anchor_id} ({anchor.domain_id}): {len(ranked)} rows.")
        return [row for _, row in ranked]

    @staticmethod
    def _passes_combo_filter(child: Concept, flag: Optional[CombinationFlag], combo_filter: ComboFilter) -> bool:
        # Only drug rows are filtered; every other domain passes through untouched.
        if child.domain_id != Domain.DRUG.value or combo_filter == ComboFilter.ALL:
            return True
        return flag is not None and flag.value == combo_filter.value

    def _lab_test_attributes(self, child_ids: List[int]) -> Dict[int, List[LabTestAttribute]]:
        """LOINC attribute edges of each child, sorted by relationship id then value."""
        attributes: Dict[int, List[LabTestAttribute]] = {cid: [] for cid in child_ids}
        for relationship_id in LAB_TEST_ATTRIBUTE_RELATIONSHIPS:
            for child_id, targets in self.store.related_from_many(child_ids, relationship_id).items():
                attributes[child_id].extend(
                    LabTestAttribute(relationship_id=relationship_id, value_name=target.concept_name)
                    for target in targets
                )
        return {
            cid: sorted(attrs, key=lambda a: (a.relationship_id, a.value_name))
            for cid, attrs in attributes.items()
        }
