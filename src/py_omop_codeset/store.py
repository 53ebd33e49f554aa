# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
The read-only contract every concept graph store fulfils, and the factory that
builds the configured one.
"""
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from rich.console import Console

from .config import settings
from .models import Concept

console = Console()

MAPS_TO = "Maps to"
HAS_DOSE_FORM = "RxNorm has dose form"
IS_A = "Is a"
PANEL_CONTAINS = "Panel contains"
CONTAINED_IN_PANEL = "Contained in panel"

# (concept, min_levels_of_separation)
RelatedConcept = Tuple[Concept, int]


class ConceptStore(Protocol):
    """
    Access patterns the query services rely on. Implementations must include the
    self row (separation 0) in ancestor and descendant traversals whenever the
    underlying closure data has one.

    The `*_many` lookups and `ancestor_class_counts` take a batch of ids and answer
    in one round trip. Ids without a match are absent from the returned dict, and
    each list is ordered by concept id.
    """

    def get_concept(self, concept_id: int) -> Optional[Concept]:
        ...

    def ancestors_of(self, concept_id: int) -> List[RelatedConcept]:
        ...

    def descendants_of(self, concept_id: int) -> List[RelatedConcept]:
        ...

    def related_from_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        """Targets of `relationship_id` edges leaving each of `concept_ids`."""
        ...

    def related_to_many(self, concept_ids: Iterable[int], relationship_id: str) -> Dict[int, List[Concept]]:
        """Sources of `relationship_id` edges pointing at each of `concept_ids`."""
        ...

    def ancestor_class_counts(self, concept_ids: Iterable[int], concept_class_id: str) -> Dict[int, int]:
        """Number of ancestors (self included) of class `concept_class_id` for each id."""
        ...

    def find_concepts(
        self,
        term: str,
        domain_id: str,
        vocabularies: Iterable[str],
        concept_classes: Optional[Iterable[str]] = None,
    ) -> List[Concept]:
        """Valid concepts whose search text contains `term`, case-insensitively."""
        ...

    def close(self) -> None:
        ...


def build_store(backend: Optional[str] = None) -> ConceptStore:
    """Creates the store selected by `backend` (defaults to settings.store_backend)."""
    backend = backend or settings.store_backend
    if backend == "neo4j":
        from .neo4j_store import Neo4jConceptStore
        console.log(f"Using Neo4j concept store at [bold cyan]{settings.neo4j_uri}[/bold cyan]")
        return Neo4jConceptStore.from_settings()

    from .graph import ConceptGraph
    from .parser import AthenaParser
    vocab_dir = Path(settings.vocab_dir)
    console.log(f"Building in-memory concept graph from [bold cyan]{vocab_dir}[/bold cyan]")
    return ConceptGraph.from_vocabulary(AthenaParser(vocab_dir).parse_files())


_store: Optional[ConceptStore] = None
_store_lock = threading.Lock()


def get_store() -> ConceptStore:
    """Process-wide store, built once on first use."""
    global _store
    if _store is None:
        with _store_lock:
            # Double-check locking pattern
            if _store is None:
                _store = build_store()
    return _store


def close_store() -> None:
    """Closes and forgets the process-wide store, if one was built."""
    global _store
    with _store_lock:
        if _store is not None:
            console.log("Closing concept store...")
            _store.close()
            _store = None
