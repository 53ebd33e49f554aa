# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
In-memory concept graph store.

The CONCEPT_ANCESTOR closure is held as an edge-weight index: for every concept,
a sorted list of (other concept id, min levels of separation) pairs in each
direction. Lookups are dictionary hits instead of recursive walks.
"""
from collections import defaultdict, deque
from typing import Dict, Iterable, List, Optional, Tuple

from rich.console import Console

from .models import Concept, ConceptAncestor, ConceptRelationship, VocabularyData
from .store import IS_A, RelatedConcept

console = Console()


def build_ancestor_closure(
    relationships: Iterable[ConceptRelationship],
    concept_ids: Iterable[int] = (),
    hierarchy_relationship: str = IS_A,
) -> List[ConceptAncestor]:
    """
    Derives CONCEPT_ANCESTOR rows from direct hierarchy edges.

    `A 'Is a' B` makes B a parent of A. Every node touching an edge, plus every id
    in `concept_ids`, gets a self row. Min and max separations are the shortest and
    longest path lengths. Raises ValueError if the edges contain a cycle.
    """
    parents: Dict[int, set] = defaultdict(set)
    children: Dict[int, set] = defaultdict(set)
    nodes = set(concept_ids)
    for rel in relationships:
        if rel.relationship_id != hierarchy_relationship or rel.concept_id_1 == rel.concept_id_2:
            continue
        parents[rel.concept_id_1].add(rel.concept_id_2)
        children[rel.concept_id_2].add(rel.concept_id_1)
        nodes.add(rel.concept_id_1)
        nodes.add(rel.concept_id_2)

    # Kahn's algorithm: a node is processed once all of its parents are.
    pending = {node: len(parents[node]) for node in nodes}
    queue = deque(sorted(node for node, count in pending.items() if count == 0))
    # node -> {ancestor: (min, max)}
    closure: Dict[int, Dict[int, Tuple[int, int]]] = {}
    while queue:
        node = queue.popleft()
        levels = {node: (0, 0)}
        for parent in parents[node]:
            for ancestor, (lo, hi) in closure[parent].items():
                lo, hi = lo + 1, hi + 1
                if ancestor in levels:
                    old_lo, old_hi = levels[ancestor]
                    levels[ancestor] = (min(lo, old_lo), max(hi, old_hi))
                else:
                    levels[ancestor] = (lo, hi)
        closure[node] = levels
        for child in sorted(children[node]):
            pending[child] -= 1
            if pending[child] == 0:
                queue.append(child)

    if len(closure) != len(nodes):
        raise ValueError(
            f"'{hierarchy_relationship}' edges contain a cycle; "
            f"{len(nodes) - len(closure)} concepts could not be ordered."
        )

    return [
        ConceptAncestor(
            ancestor_concept_id=ancestor,
            descendant_concept_id=descendant,
            min_levels_of_separation=lo,
            max_levels_of_separation=hi,
        )
        for descendant, levels in closure.items()
        for ancestor, (lo, hi) in levels.items()
    ]


class ConceptGraph:
    """
    A ConceptStore backed by plain dictionaries. Immutable once built.
    """

    def __init__(self, concepts: Iterable[Concept]):
        self._concepts: Dict[int, Concept] = {c.concept_id: c for c in concepts}
        self._by_domain: Dict[str, List[Concept]] = defaultdict(list)
        for concept in sorted(self._concepts.values(), key=lambda c: c.concept_id):
            self._by_domain[concept.domain_id].append(concept)
        self._up: Dict[int, Dict[int, int]] = defaultdict(dict)
        self._down: Dict[int, Dict[int, int]] = defaultdict(dict)
        self._outgoing: Dict[Tuple[int, str], set] = defaultdict(set)
        self._incoming: Dict[Tuple[int, str], set] = defaultdict(set)
        self._ancestor_index: Dict[int, List[Tuple[int, int]]] = {}
        self._descendant_index: Dict[int, List[Tuple[int, int]]] = {}

    @classmethod
    def from_vocabulary(cls, data: VocabularyData) -> "ConceptGraph":
        graph = cls(data.concepts)
        ancestors = data.ancestors
        if not ancestors:
            console.log("[yellow]No CONCEPT_ANCESTOR rows found. Deriving the closure from 'Is a' edges.[/yellow]")
            standard_ids = [c.concept_id for c in data.concepts if c.standard_concept in ("S", "C")]
            ancestors = build_ancestor_closure(data.relationships, standard_ids)
        graph.add_ancestors(ancestors)
        graph.add_relationships(data.relationships)
        console.log(
            f"Indexed {len(graph._concepts)} concepts, {len(ancestors)} closure rows "
            f"and {len(data.relationships)} relationships."
        )
        return graph

    def add_ancestors(self, rows: Iterable[ConceptAncestor]):
        for row in rows:
            ancestor, descendant = row.ancestor_concept_id, row.descendant_concept_id
            distance = row.min_levels_of_separation
            known = self._up[descendant].get(ancestor)
            if known is None or distance < known:
                self._up[descendant][ancestor] = distance
                self._down[ancestor][descendant] = distance
        self._ancestor_index.clear()
        self._descendant_index.clear()

    def add_relationships(self, rows: Iterable[ConceptRelationship]):
        for row in rows:
            self._outgoing[(row.concept_id_1, row.relationship_id)].add(row.concept_id_2)
            self._incoming[(row.concept_id_2, row.relationship_id)].add(row.concept_id_1)

    @staticmethod
    def _sorted_pairs(weights: Dict[int, int]) -> List[Tuple[int, int]]:
        return sorted(weights.items(), key=lambda pair: (pair[1], pair[0]))

    def _resolve(self, pairs: List[Tuple[int, int]]) -> List[RelatedConcept]:
        return [(self._concepts[cid], distance) for cid, distance in pairs if cid in self._concepts]

    def _lookup(self, ids: Iterable[int]) -> List[Concept]:
        return [self._concepts[cid] for cid in sorted(ids) if cid in self._concepts]

    def get_concept(self, concept_id: int) -> Optional[Concept]:
        return self._concepts.get(concept_id)

    def ancestors_of(self, concept_id: int) -> List[RelatedConcept]:
        if concept_id not in self._ancestor_index:
            self._ancestor_index[concept_id] = self._sorted_pairs(self._up.get(concept_id, {}))
        return self._resolve(self._ancestor_index[concept_id])

    def descendants_of(self, concept_id: int) -> List[RelatedConcept]:
        if concept_id not in self._descendant_index:
            self._descendant_index[concept_id] = self._sorted_pairs(self._down.get(concept_id, {}))
        return self._resolve(self._descendant_index[concept_id])

    def _related_many(self, index, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        related = {}
        for concept_id in concept_ids:
            concepts = self._lookup(index.get((concept_id, relationship_id), ()))
            if concepts:
                related[concept_id] = concepts
        return related

    def related_from_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        return self._related_many(self._outgoing, concept_ids, relationship_id)

    def related_to_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        return self._related_many(self._incoming, concept_ids, relationship_id)

    def ancestor_class_counts(self, concept_ids: Iterable[int], concept_class_id: str) -> Dict[int, int]:
        counts = {}
        for concept_id in concept_ids:
            count = sum(
                1 for ancestor_id in self._up.get(concept_id, {})
                if ancestor_id in self._concepts and self._concepts[ancestor_id].concept_class_id == concept_class_id
            )
            if count:
                counts[concept_id] = count
        return counts

    def find_concepts(
        self,
        term: str,
        domain_id: str,
        vocabularies: Iterable[str],
        concept_classes: Optional[Iterable[str]] = None,
    ) -> List[Concept]:
        needle = term.upper()
        vocabularies = set(vocabularies)
        classes = set(concept_classes) if concept_classes is not None else None
        return [
            c for c in self._by_domain.get(domain_id, [])
            if c.is_valid
            and c.vocabulary_id in vocabularies
            and (classes is None or c.concept_class_id in classes)
            and needle in c.search_text
        ]

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._concepts)
