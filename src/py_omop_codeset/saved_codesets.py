# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Decides how a code set is handed to persistence and rebuilds it on load.

Small sets are stored row by row. Sets at or above the configured threshold are
stored as anchor ids plus build parameters and re-derived by the builder, which
is deterministic for a fixed vocabulary.
"""
from typing import List, Optional

from rich.console import Console

from .codeset import CodeSetBuilder, parse_build_type, parse_combo_filter, validate_concept_ids
from .config import settings
from .exceptions import InvalidInputError
from .models import CodeSetRow, SavedCodeSet

console = Console()


def plan_saved_code_set(
    code_set_name: str,
    rows: List[CodeSetRow],
    anchor_concept_ids: Optional[List[int]] = None,
    build_type=None,
    combo_filter=None,
    domain_id: Optional[str] = None,
    description: Optional[str] = None,
    threshold: Optional[int] = None,
) -> SavedCodeSet:
    if not code_set_name or not rows:
        raise InvalidInputError("Code set name and concepts are required")
    threshold = threshold or settings.large_codeset_threshold
    total = len(rows)

    if total < threshold:
        console.log(f"Saving small code set '{code_set_name}' ({total} concepts, materialized).")
        return SavedCodeSet(
            code_set_name=code_set_name,
            description=description,
            total_concepts=total,
            is_materialized=True,
            rows=rows,
            anchor_concept_ids=anchor_concept_ids,
            build_type=parse_build_type(build_type) if build_type else None,
            combo_filter=parse_combo_filter(combo_filter),
            domain_id=domain_id,
        )

    if not anchor_concept_ids:
        raise InvalidInputError("anchor_concept_ids required for large code sets")
    if not build_type:
        raise InvalidInputError("build_type required for large code sets")
    console.log(f"Saving large code set '{code_set_name}' ({total} concepts, anchor-only).")
    return SavedCodeSet(
        code_set_name=code_set_name,
        description=description,
        total_concepts=total,
        is_materialized=False,
        anchor_concept_ids=validate_concept_ids(list(anchor_concept_ids)),
        build_type=parse_build_type(build_type),
        combo_filter=parse_combo_filter(combo_filter),
        domain_id=domain_id,
    )


def rebuild(saved: SavedCodeSet, builder: CodeSetBuilder) -> List[CodeSetRow]:
    """Returns the rows of a saved code set, re-deriving them when only anchors were stored."""
    if saved.is_materialized:
        return list(saved.rows or [])
    console.log(f"Rebuilding '{saved.code_set_name}' from {len(saved.anchor_concept_ids or [])} anchors...")
    rows = builder.build(saved.anchor_concept_ids, saved.combo_filter, saved.build_type)
    if len(rows) != saved.total_concepts:
        console.log(
            f"[yellow]Rebuilt {len(rows)} concepts for '{saved.code_set_name}', "
            f"{saved.total_concepts} were saved. The vocabulary may have changed.[/yellow]"
        )
    return rows
