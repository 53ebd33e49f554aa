# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
ConceptStore backed by Neo4j.

Graph layout (written by the bulk import, see transformer.py):
  (:Concept {concept_id, concept_name, domain_id, vocabulary_id, concept_class_id,
             concept_code, standard_concept, invalid_reason})
  (:Concept)-[:ANCESTOR_OF {min_levels, max_levels}]->(:Concept)   closure, self loops included
  (:Concept)-[:RELATES_TO {relationship_id}]->(:Concept)           CONCEPT_RELATIONSHIP
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError
from rich.console import Console

from .config import settings
from .exceptions import UpstreamFailureError
from .models import Concept
from .store import RelatedConcept

console = Console()

GET_CONCEPT_QUERY = "MATCH (c:Concept {concept_id: $concept_id}) RETURN c"

ANCESTORS_QUERY = """
MATCH (c:Concept)-[r:ANCESTOR_OF]->(:Concept {concept_id: $concept_id})
RETURN c, r.min_levels AS distance
ORDER BY distance, c.concept_id
"""

DESCENDANTS_QUERY = """
MATCH (:Concept {concept_id: $concept_id})-[r:ANCESTOR_OF]->(c:Concept)
RETURN c, r.min_levels AS distance
ORDER BY distance, c.concept_id
"""

RELATED_FROM_MANY_QUERY = """
UNWIND $concept_ids AS concept_id
MATCH (:Concept {concept_id: concept_id})-[:RELATES_TO {relationship_id: $relationship_id}]->(c:Concept)
RETURN DISTINCT concept_id, c
ORDER BY concept_id, c.concept_id
"""

RELATED_TO_MANY_QUERY = """
UNWIND $concept_ids AS concept_id
MATCH (c:Concept)-[:RELATES_TO {relationship_id: $relationship_id}]->(:Concept {concept_id: concept_id})
RETURN DISTINCT concept_id, c
ORDER BY concept_id, c.concept_id
"""

ANCESTOR_CLASS_COUNTS_QUERY = """
UNWIND $concept_ids AS concept_id
MATCH (a:Concept)-[:ANCESTOR_OF]->(:Concept {concept_id: concept_id})
WHERE a.concept_class_id = $concept_class_id
RETURN concept_id, count(DISTINCT a) AS ancestor_count
"""

FIND_CONCEPTS_QUERY = """
MATCH (c:Concept)
WHERE c.domain_id = $domain_id
  AND c.vocabulary_id IN $vocabularies
  AND ($classes IS NULL OR c.concept_class_id IN $classes)
  AND (c.invalid_reason IS NULL OR c.invalid_reason = '')
  AND toUpper(toString(c.concept_id) + ' ' + coalesce(c.concept_code, '') + ' ' + c.concept_name) CONTAINS $term
RETURN c
ORDER BY c.concept_id
"""


def _to_concept(node) -> Concept:
    return Concept.model_validate(dict(node))


class Neo4jConceptStore:
    """Answers ConceptStore queries with Cypher against a Neo4j database."""

    def __init__(self, driver: Driver, database: Optional[str] = None):
        self.driver = driver
        self.database = database or settings.neo4j_database

    @classmethod
    def from_settings(cls) -> "Neo4jConceptStore":
        driver = GraphDatabase.driver(settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password))
        return cls(driver, settings.neo4j_database)

    def _run_query(self, query: str, params: dict = None) -> list:
        """Helper to run a read query and return its records."""
        try:
            records, _, _ = self.driver.execute_query(
                query, parameters_=params or {}, database_=self.database
            )
        except (Neo4jError, DriverError) as e:
            console.log(f"[bold red]Neo4j query failed: {e}[/bold red]")
            raise UpstreamFailureError(f"Concept graph store error: {e}") from e
        return records

    def get_concept(self, concept_id: int) -> Optional[Concept]:
        records = self._run_query(GET_CONCEPT_QUERY, {"concept_id": concept_id})
        return _to_concept(records[0]["c"]) if records else None

    def ancestors_of(self, concept_id: int) -> List[RelatedConcept]:
        records = self._run_query(ANCESTORS_QUERY, {"concept_id": concept_id})
        return [(_to_concept(r["c"]), r["distance"]) for r in records]

    def descendants_of(self, concept_id: int) -> List[RelatedConcept]:
        records = self._run_query(DESCENDANTS_QUERY, {"concept_id": concept_id})
        return [(_to_concept(r["c"]), r["distance"]) for r in records]

    def _related_many(self, query: str, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        concept_ids = list(dict.fromkeys(concept_ids))
        if not concept_ids:
            return {}
        records = self._run_query(query, {"concept_ids": concept_ids, "relationship_id": relationship_id})
        related: Dict[int, List[Concept]] = defaultdict(list)
        for r in records:
            related[r["concept_id"]].append(_to_concept(r["c"]))
        return dict(related)

    def related_from_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        return self._related_many(RELATED_FROM_MANY_QUERY, concept_ids, relationship_id)

    def related_to_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        return self._related_many(RELATED_TO_MANY_QUERY, concept_ids, relationship_id)

    def ancestor_class_counts(self, concept_ids: Iterable[int], concept_class_id: str) -> Dict[int, int]:
        concept_ids = list(dict.fromkeys(concept_ids))
        if not concept_ids:
            return {}
        records = self._run_query(
            ANCESTOR_CLASS_COUNTS_QUERY, {"concept_ids": concept_ids, "concept_class_id": concept_class_id}
        )
        return {r["concept_id"]: r["ancestor_count"] for r in records if r["ancestor_count"]}

    def find_concepts(
        self,
        term: str,
        domain_id: str,
        vocabularies: Iterable[str],
        concept_classes: Optional[Iterable[str]] = None,
    ) -> List[Concept]:
        params = {
            "term": term.upper(),
            "domain_id": domain_id,
            "vocabularies": sorted(vocabularies),
            "classes": sorted(concept_classes) if concept_classes is not None else None,
        }
        return [_to_concept(r["c"]) for r in self._run_query(FIND_CONCEPTS_QUERY, params)]

    def close(self) -> None:
        self.driver.close()
