# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from typing import Dict, List, Tuple

from rich.console import Console

from .exceptions import InvalidInputError, NotFoundError
from .models import HierarchyNode
from .store import ConceptStore
from .vocabulary_policy import allowed_vocabularies, hierarchy_class_rules

console = Console()


def validate_concept_id(concept_id) -> int:
    """Accepts a positive integer concept id; booleans and numeric strings are rejected."""
    if isinstance(concept_id, bool) or not isinstance(concept_id, int) or concept_id <= 0:
        raise InvalidInputError("Valid concept ID is required")
    return concept_id


class HierarchyResolver:
    """
    Explores the ancestors and descendants of one concept, restricted to the
    vocabularies (and, for drugs, the concept classes) allowed for its domain.
    """

    def __init__(self, store: ConceptStore):
        self.store = store

    def resolve(self, concept_id: int) -> List[HierarchyNode]:
        concept_id = validate_concept_id(concept_id)
        root = self.store.get_concept(concept_id)
        if root is None:
            raise NotFoundError(f"Concept {concept_id} not found")

        vocabularies = allowed_vocabularies(root.domain_id)
        ancestor_rule, descendant_rule = hierarchy_class_rules(root.domain_id)

        # Keyed by (steps_away, concept_id) so the self row, present in both halves, is kept once.
        nodes: Dict[Tuple[int, int], HierarchyNode] = {}

        def add(concept, steps_away: int):
            nodes.setdefault((steps_away, concept.concept_id), HierarchyNode(
                steps_away=steps_away,
                concept_name=concept.concept_name,
                concept_id=concept.concept_id,
                concept_code=concept.concept_code,
                vocabulary_id=concept.vocabulary_id,
                concept_class_id=concept.concept_class_id,
                root_term=root.concept_name,
            ))

        for ancestor, distance in self.store.ancestors_of(concept_id):
            if ancestor.vocabulary_id in vocabularies and ancestor_rule(ancestor):
                add(ancestor, distance)
        for descendant, distance in self.store.descendants_of(concept_id):
            if descendant.vocabulary_id in vocabularies and descendant_rule(descendant):
                add(descendant, -distance)

        result = sorted(nodes.values(), key=lambda n: (-n.steps_away, n.concept_id))
        console.log(f"Hierarchy for concept {concept_id} ({root.domain_id}): {len(result)} nodes.")
        return result
