# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import csv
import os
from pathlib import Path
from typing import Callable, FrozenSet, List, Optional, Tuple
from concurrent.futures import ProcessPoolExecutor
from .config import settings
from .models import Concept, ConceptAncestor, ConceptRelationship, VocabularyData
from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn
from rich.console import Console

console = Console()

# Athena exports are tab-delimited, carry a header row and never quote fields.
DELIMITER = "\t"
QUOTECHAR = "\x00"

CONCEPT_FILE = "CONCEPT.csv"
CONCEPT_RELATIONSHIP_FILE = "CONCEPT_RELATIONSHIP.csv"
CONCEPT_ANCESTOR_FILE = "CONCEPT_ANCESTOR.csv"

# (filepath, start, end, header, relationship filter)
ChunkInfo = Tuple[str, int, int, List[str], Optional[FrozenSet[str]]]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _rows(chunk_info: ChunkInfo):
    filepath, start, end, header, _ = chunk_info
    with open(filepath, 'rb') as f:
        f.seek(start)
        chunk_content = f.read(end - start).decode('utf-8', errors='ignore')
    # Rows end at "\n" only; names may contain other Unicode line separators.
    lines = [line[:-1] if line.endswith("\r") else line for line in chunk_content.split("\n")]
    reader = csv.reader(lines, delimiter=DELIMITER, quotechar=QUOTECHAR)
    for row in reader:
        if len(row) < len(header):
            continue  # Skip malformed lines
        yield dict(zip(header, row))


def _process_concept_chunk(chunk_info: ChunkInfo) -> List[Concept]:
    """Worker function to process a chunk of CONCEPT.csv."""
    results = []
    for row in _rows(chunk_info):
        try:
            results.append(Concept(
                concept_id=int(row["concept_id"]),
                concept_name=row["concept_name"],
                domain_id=row["domain_id"],
                vocabulary_id=row["vocabulary_id"],
                concept_class_id=row["concept_class_id"],
                concept_code=row.get("concept_code", ""),
                standard_concept=_blank_to_none(row.get("standard_concept")),
                invalid_reason=_blank_to_none(row.get("invalid_reason")),
            ))
        except (KeyError, ValueError):
            continue
    return results


def _process_relationship_chunk(chunk_info: ChunkInfo) -> List[ConceptRelationship]:
    """Worker function to process a chunk of CONCEPT_RELATIONSHIP.csv."""
    relationship_filter = chunk_info[4]
    results = []
    for row in _rows(chunk_info):
        try:
            if relationship_filter is not None and row["relationship_id"] not in relationship_filter:
                continue
            results.append(ConceptRelationship(
                concept_id_1=int(row["concept_id_1"]),
                concept_id_2=int(row["concept_id_2"]),
                relationship_id=row["relationship_id"],
                valid_start_date=_blank_to_none(row.get("valid_start_date")),
                valid_end_date=_blank_to_none(row.get("valid_end_date")),
                invalid_reason=_blank_to_none(row.get("invalid_reason")),
            ))
        except (KeyError, ValueError):
            continue
    return results


def _process_ancestor_chunk(chunk_info: ChunkInfo) -> List[ConceptAncestor]:
    """Worker function to process a chunk of CONCEPT_ANCESTOR.csv."""
    results = []
    for row in _rows(chunk_info):
        try:
            results.append(ConceptAncestor(
                ancestor_concept_id=int(row["ancestor_concept_id"]),
                descendant_concept_id=int(row["descendant_concept_id"]),
                min_levels_of_separation=int(row["min_levels_of_separation"]),
                max_levels_of_separation=int(row["max_levels_of_separation"]),
            ))
        except (KeyError, ValueError):
            continue
    return results


def _read_header(filepath: str) -> Tuple[List[str], int]:
    """Returns the lower-cased column names and the byte offset of the first data row."""
    with open(filepath, 'rb') as f:
        first_line = f.readline()
        offset = f.tell()
    header = first_line.decode('utf-8-sig', errors='ignore').rstrip("\r\n").split(DELIMITER)
    return [column.strip().lower() for column in header], offset


def _get_file_chunks(filepath: str, num_chunks: int, start: int = 0) -> List[Tuple[str, int, int]]:
    """Splits a file into byte-offset chunks for parallel processing."""
    file_size = os.path.getsize(filepath)
    chunk_size = max((file_size - start) // max(num_chunks, 1), 1)
    chunks = []
    with open(filepath, 'rb') as f:
        while start < file_size:
            end = min(start + chunk_size, file_size)
            # Align end to the next newline character
            if end < file_size:
                f.seek(end)
                f.readline()
                end = f.tell()

            chunks.append((filepath, start, end))
            start = end
    return chunks


class AthenaParser:
    """Parses an OMOP vocabulary export downloaded from Athena into Pydantic models."""

    def __init__(self, vocab_dir: Path):
        self.vocab_dir = Path(vocab_dir)
        self.concept_path = self.vocab_dir / CONCEPT_FILE
        self.relationship_path = self.vocab_dir / CONCEPT_RELATIONSHIP_FILE
        self.ancestor_path = self.vocab_dir / CONCEPT_ANCESTOR_FILE

    def _parse_file(
        self,
        executor: ProcessPoolExecutor,
        progress: Progress,
        path: Path,
        worker: Callable[[ChunkInfo], list],
        relationship_filter: Optional[FrozenSet[str]] = None,
    ) -> list:
        header, offset = _read_header(str(path))
        chunks = _get_file_chunks(str(path), settings.max_parallel_processes * 4, start=offset)  # More chunks than workers
        task = progress.add_task(f"Parsing {path.name}...", total=len(chunks))
        futures = [
            executor.submit(worker, (filepath, start, end, header, relationship_filter))
            for filepath, start, end in chunks
        ]
        # Collect in submission order so the parsed rows keep the file order.
        results = []
        for future in futures:
            results.extend(future.result())
            progress.update(task, advance=1)
        console.log(f"Parsed {len(results)} rows from {path.name}.")
        return results

    def parse_files(self) -> VocabularyData:
        """Orchestrates the parallel parsing of the vocabulary files."""
        if not self.concept_path.exists():
            raise FileNotFoundError(f"{CONCEPT_FILE} not found in {self.vocab_dir}")

        relationship_filter = frozenset(settings.relationship_filter) if settings.relationship_filter else None
        relationships: List[ConceptRelationship] = []
        ancestors: List[ConceptAncestor] = []

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            "[progress.percentage]{task.percentage:>3.0f}%",
            TimeElapsedColumn(),
        ) as progress:
            with ProcessPoolExecutor(max_workers=settings.max_parallel_processes) as executor:
                concepts = self._parse_file(executor, progress, self.concept_path, _process_concept_chunk)
                if self.relationship_path.exists():
                    relationships = self._parse_file(
                        executor, progress, self.relationship_path, _process_relationship_chunk, relationship_filter
                    )
                else:
                    console.log(f"[yellow]{CONCEPT_RELATIONSHIP_FILE} not found. Continuing without relationships.[/yellow]")
                if self.ancestor_path.exists():
                    ancestors = self._parse_file(executor, progress, self.ancestor_path, _process_ancestor_chunk)
                else:
                    console.log(f"[yellow]{CONCEPT_ANCESTOR_FILE} not found.[/yellow]")

        # Drop edges that point outside the parsed concept table
        known_ids = {c.concept_id for c in concepts}
        relationships = [
            rel for rel in relationships
            if rel.concept_id_1 in known_ids and rel.concept_id_2 in known_ids
        ]
        console.log(f"Kept {len(relationships)} relationships between known concepts.")

        return VocabularyData(concepts=concepts, relationships=relationships, ancestors=ancestors)
