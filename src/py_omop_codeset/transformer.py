# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import csv
from pathlib import Path
from typing import Dict, List, Tuple
from .models import Concept, ConceptAncestor, ConceptRelationship, VocabularyData
from rich.console import Console

console = Console()

CONCEPT_NODES_CSV = "nodes_concepts.csv"
ANCESTOR_RELS_CSV = "rels_ancestor_of.csv"
CONCEPT_RELS_CSV = "rels_relates_to.csv"


class CSVTransformer:
    """
    Transforms a parsed OMOP vocabulary into CSV files suitable for Neo4j's bulk import.
    """
    def __init__(self, import_dir: Path):
        self.import_dir = import_dir
        self.import_dir.mkdir(parents=True, exist_ok=True)
        console.log(f"CSV output directory set to: {self.import_dir.resolve()}")

    def _write_csv(self, filename: str, header: List[str], rows: List[List]):
        """Utility to write data to a CSV file."""
        filepath = self.import_dir / filename
        with open(filepath, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        console.log(f"Wrote {len(rows)} rows to {filepath.name}")

    def _write_concept_nodes_csv(self, concepts: List[Concept]):
        """Generates the CSV for Concept nodes."""
        header = [
            "concept_id:ID(Concept-ID)", "concept_name:string", "domain_id:string",
            "vocabulary_id:string", "concept_class_id:string", "concept_code:string",
            "standard_concept:string", "invalid_reason:string", ":LABEL",
        ]
        rows = [
            [
                c.concept_id, c.concept_name, c.domain_id, c.vocabulary_id,
                c.concept_class_id, c.concept_code, c.standard_concept or "", c.invalid_reason or "", "Concept",
            ]
            for c in concepts
        ]
        self._write_csv(CONCEPT_NODES_CSV, header, rows)

    def _write_ancestor_rels_csv(self, ancestors: List[ConceptAncestor]):
        """
        Generates the CSV for (:Concept)-[:ANCESTOR_OF]->(:Concept) closure edges.
        Duplicate pairs keep the smallest min and the largest max separation.
        """
        header = [":START_ID(Concept-ID)", ":END_ID(Concept-ID)", "min_levels:int", "max_levels:int", ":TYPE"]
        levels: Dict[Tuple[int, int], Tuple[int, int]] = {}
        for row in ancestors:
            key = (row.ancestor_concept_id, row.descendant_concept_id)
            lo, hi = row.min_levels_of_separation, row.max_levels_of_separation
            if key in levels:
                old_lo, old_hi = levels[key]
                lo, hi = min(lo, old_lo), max(hi, old_hi)
            levels[key] = (lo, hi)
        rows = [[a, d, lo, hi, "ANCESTOR_OF"] for (a, d), (lo, hi) in levels.items()]
        self._write_csv(ANCESTOR_RELS_CSV, header, rows)

    def _write_concept_rels_csv(self, relationships: List[ConceptRelationship]):
        """Generates the CSV for (:Concept)-[:RELATES_TO]->(:Concept) typed edges."""
        header = [
            ":START_ID(Concept-ID)", ":END_ID(Concept-ID)", "relationship_id:string",
            "invalid_reason:string", ":TYPE",
        ]
        unique_rels = {
            (r.concept_id_1, r.concept_id_2, r.relationship_id): r.invalid_reason or ""
            for r in relationships
        }
        rows = [[c1, c2, rel_id, invalid, "RELATES_TO"] for (c1, c2, rel_id), invalid in unique_rels.items()]
        self._write_csv(CONCEPT_RELS_CSV, header, rows)

    def transform_to_csvs(self, data: VocabularyData):
        """
        Orchestrates the transformation of all parsed data into CSV files.
        """
        console.log("Starting transformation of parsed data to CSV files...")
        self._write_concept_nodes_csv(data.concepts)
        self._write_ancestor_rels_csv(data.ancestors)
        self._write_concept_rels_csv(data.relationships)
        console.log("[green]CSV transformation complete.[/green]")
