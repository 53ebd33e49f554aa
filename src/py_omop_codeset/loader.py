# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from pathlib import Path
from typing import List, Optional
from neo4j import Driver
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from .config import settings
from .graph import build_ancestor_closure
from .models import VocabularyData
from .parser import AthenaParser
from .transformer import CSVTransformer, CONCEPT_NODES_CSV, ANCESTOR_RELS_CSV, CONCEPT_RELS_CSV

console = Console()

SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT IF NOT EXISTS FOR (c:Concept) REQUIRE c.concept_id IS UNIQUE",
    "CREATE INDEX IF NOT EXISTS FOR (c:Concept) ON (c.domain_id, c.vocabulary_id)",
    "CREATE INDEX IF NOT EXISTS FOR ()-[r:RELATES_TO]-() ON (r.relationship_id)",
]

LOAD_CONCEPTS_QUERY = """
UNWIND $rows AS row
MERGE (c:Concept {concept_id: row.concept_id})
SET c += row
"""

# Duplicate closure rows keep the shortest and longest separations.
LOAD_ANCESTORS_QUERY = """
UNWIND $rows AS row
MATCH (a:Concept {concept_id: row.ancestor_concept_id})
MATCH (d:Concept {concept_id: row.descendant_concept_id})
MERGE (a)-[r:ANCESTOR_OF]->(d)
SET r.min_levels = CASE WHEN r.min_levels IS NULL OR row.min_levels_of_separation < r.min_levels
                        THEN row.min_levels_of_separation ELSE r.min_levels END,
    r.max_levels = CASE WHEN r.max_levels IS NULL OR row.max_levels_of_separation > r.max_levels
                        THEN row.max_levels_of_separation ELSE r.max_levels END
"""

LOAD_RELATIONSHIPS_QUERY = """
UNWIND $rows AS row
MATCH (a:Concept {concept_id: row.concept_id_1})
MATCH (b:Concept {concept_id: row.concept_id_2})
MERGE (a)-[r:RELATES_TO {relationship_id: row.relationship_id}]->(b)
SET r.invalid_reason = row.invalid_reason
"""


def with_closure(data: VocabularyData) -> VocabularyData:
    """Fills in CONCEPT_ANCESTOR from 'Is a' edges when the export has none."""
    if not data.ancestors:
        console.log("[yellow]No CONCEPT_ANCESTOR rows found. Deriving the closure from 'Is a' edges.[/yellow]")
        standard_ids = [c.concept_id for c in data.concepts if c.standard_concept in ("S", "C")]
        data.ancestors = build_ancestor_closure(data.relationships, standard_ids)
    return data


class Neo4jLoader:
    """
    Orchestrates loading an OMOP vocabulary export into Neo4j: bulk import files,
    the neo4j-admin command, and the constraints the query store relies on.
    """

    def __init__(self, driver: Optional[Driver] = None):
        self._driver = driver

    def build_import_command(self) -> str:
        # The command uses relative paths (just filenames) because neo4j-admin
        # automatically looks inside the configured import directory.
        return f"""
neo4j-admin database import full \\
    --id-type=INTEGER \\
    --nodes=Concept="{CONCEPT_NODES_CSV}" \\
    --relationships=ANCESTOR_OF="{ANCESTOR_RELS_CSV}" \\
    --relationships=RELATES_TO="{CONCEPT_RELS_CSV}" \\
    --overwrite-destination=true \\
    {settings.neo4j_database}
        """

    def run_bulk_import(self, vocab_dir: Path) -> str:
        """
        Parses and transforms the Athena export into CSVs and prints the
        neo4j-admin import command for the user to execute.
        """
        console.log("Starting bulk import process...")
        import_dir = Path(settings.neo4j_import_dir)

        # Step 1: Parse the vocabulary files
        data = with_closure(AthenaParser(vocab_dir).parse_files())

        # Step 2: Transform parsed data into CSVs in the Neo4j import directory
        CSVTransformer(import_dir).transform_to_csvs(data)

        # Step 3: Generate the neo4j-admin command
        command = self.build_import_command()
        console.print(Panel.fit(
            Syntax(command, "bash", theme="monokai", line_numbers=True),
            title="[bold yellow]Step 1: Run the neo4j-admin Bulk Import Command[/bold yellow]",
            border_style="yellow",
            padding=(1, 2)
        ))

        console.print("\n[bold red]IMPORTANT:[/] The target Neo4j database must be [bold]stopped[/bold] before running this command.", highlight=False)
        console.print(f"  Example: `neo4j stop -d {settings.neo4j_database}`")
        console.print("\nAfter the import is complete, restart your database and create the schema:")
        console.print("  [bold cyan]py-omop-codeset init-schema[/bold cyan]")
        console.print("\n[green]Bulk import files and command generated successfully.[/green]")
        return command

    def ensure_schema(self):
        """Creates the uniqueness constraint and lookup indexes used by the concept store."""
        if not self._driver:
            raise ValueError("A Neo4j driver is required for this operation.")
        console.log("Ensuring database constraints and indexes exist...")
        for statement in SCHEMA_STATEMENTS:
            self._driver.execute_query(statement, database_=settings.neo4j_database)
        console.log("[green]Constraints and indexes are in place.[/green]")

    def _load_batches(self, query: str, rows: List[dict], label: str):
        batch_size = settings.load_batch_size
        for start in range(0, len(rows), batch_size):
            self._driver.execute_query(
                query, parameters_={"rows": rows[start:start + batch_size]}, database_=settings.neo4j_database
            )
        console.log(f"Loaded {len(rows)} {label}.")

    def load_vocabulary(self, data: VocabularyData):
        """
        Writes a parsed vocabulary straight into Neo4j with batched UNWIND statements.

        Suited to small exports and test databases. Full Athena downloads should go
        through `run_bulk_import`, which is far faster.
        """
        if not self._driver:
            raise ValueError("A Neo4j driver is required for this operation.")
        data = with_closure(data)
        self.ensure_schema()
        self._load_batches(LOAD_CONCEPTS_QUERY, [c.model_dump() for c in data.concepts], "concepts")
        self._load_batches(LOAD_ANCESTORS_QUERY, [a.model_dump() for a in data.ancestors], "closure rows")
        self._load_batches(
            LOAD_RELATIONSHIPS_QUERY,
            [
                {
                    "concept_id_1": r.concept_id_1,
                    "concept_id_2": r.concept_id_2,
                    "relationship_id": r.relationship_id,
                    "invalid_reason": r.invalid_reason,
                }
                for r in data.relationships
            ],
            "relationships",
        )
        console.log("[green]Vocabulary loaded.[/green]")
