# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import pytest

from py_omop_codeset.exceptions import InvalidInputError, NotFoundError
from py_omop_codeset.graph import ConceptGraph
from py_omop_codeset.hierarchy import HierarchyResolver
from py_omop_codeset.models import Concept, ConceptAncestor, VocabularyData


def _ancestor(ancestor, descendant, levels):
    return ConceptAncestor(
        ancestor_concept_id=ancestor, descendant_concept_id=descendant,
        min_levels_of_separation=levels, max_levels_of_separation=levels,
    )


def test_drug_hierarchy_drops_foreign_vocabulary_ancestor():
    """
    A SNOMED ancestor of an RxNorm ingredient is not an allowed hierarchy row for
    drugs, while the ingredient itself and its clinical drug are.
    """
    # ARRANGE
    concepts = [
        Concept(concept_id=100, concept_name="ritonavir", domain_id="Drug", vocabulary_id="RxNorm",
                concept_class_id="Ingredient", concept_code="85762", standard_concept="S"),
        Concept(concept_id=50, concept_name="Antiviral agent", domain_id="Drug", vocabulary_id="SNOMED",
                concept_class_id="Substance", concept_code="372701004", standard_concept="S"),
        Concept(concept_id=200, concept_name="ritonavir 100 MG Oral Tablet", domain_id="Drug",
                vocabulary_id="RxNorm", concept_class_id="Clinical Drug", concept_code="311372",
                standard_concept="S"),
    ]
    ancestors = [
        _ancestor(100, 100, 0), _ancestor(50, 50, 0), _ancestor(200, 200, 0),
        _ancestor(50, 100, 2), _ancestor(100, 200, 1),
    ]
    graph = ConceptGraph.from_vocabulary(VocabularyData(concepts=concepts, relationships=[], ancestors=ancestors))

    # ACT
    nodes = HierarchyResolver(graph).resolve(100)

    # ASSERT
    assert [(n.steps_away, n.concept_id) for n in nodes] == [(0, 100), (-1, 200)]
    assert all(n.root_term == "ritonavir" for n in nodes)


def test_drug_hierarchy_keeps_atc_only_above(graph: ConceptGraph):
    nodes = HierarchyResolver(graph).resolve(100)

    assert [(n.steps_away, n.concept_id) for n in nodes] == [(2, 61), (1, 60), (0, 100), (-1, 200), (-1, 201)]
    assert 50 not in {n.concept_id for n in nodes}
    assert nodes[0].vocabulary_id == "ATC"
    assert nodes[0].concept_code == "J05AE"


def test_atc_concept_has_no_atc_descendants(graph: ConceptGraph):
    """ATC rows are admitted above the queried concept only, so querying an ATC class shows just its RxNorm members."""
    nodes = HierarchyResolver(graph).resolve(61)

    assert 60 not in {n.concept_id for n in nodes}
    assert [(n.steps_away, n.concept_id) for n in nodes][0] == (0, 61)
    assert [n.concept_id for n in nodes if n.steps_away < 0] == [100, 200, 201]
    assert all(n.vocabulary_id == "RxNorm" for n in nodes if n.steps_away < 0)


def test_condition_hierarchy(graph: ConceptGraph):
    nodes = HierarchyResolver(graph).resolve(1001)

    assert [(n.steps_away, n.concept_id) for n in nodes] == [(1, 1000), (0, 1001), (-1, 1002)]
    assert {n.root_term for n in nodes} == {"Type 2 diabetes mellitus"}


def test_self_row_appears_once(graph: ConceptGraph):
    nodes = HierarchyResolver(graph).resolve(1000)
    assert [n.concept_id for n in nodes if n.steps_away == 0] == [1000]


def test_hierarchy_is_deterministic(graph: ConceptGraph):
    resolver = HierarchyResolver(graph)
    assert resolver.resolve(100) == resolver.resolve(100)


def test_unknown_concept_is_not_found(graph: ConceptGraph):
    with pytest.raises(NotFoundError, match="Concept 424242 not found"):
        HierarchyResolver(graph).resolve(424242)


@pytest.mark.parametrize("concept_id", [None, 0, -5, "100", 1.5, True])
def test_invalid_concept_id(graph: ConceptGraph, concept_id):
    with pytest.raises(InvalidInputError, match="Valid concept ID is required"):
        HierarchyResolver(graph).resolve(concept_id)
