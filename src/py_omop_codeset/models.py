# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from enum import Enum
from pydantic import BaseModel
from typing import List, Optional, Tuple


class Domain(str, Enum):
    """Clinical category a concept belongs to (CONCEPT.domain_id)."""
    CONDITION = "Condition"
    DRUG = "Drug"
    PROCEDURE = "Procedure"
    MEASUREMENT = "Measurement"
    OBSERVATION = "Observation"
    DEVICE = "Device"


class ComboFilter(str, Enum):
    ALL = "ALL"
    SINGLE = "SINGLE"
    COMBINATION = "COMBINATION"


class BuildType(str, Enum):
    HIERARCHICAL = "hierarchical"
    DIRECT = "direct"
    LABTEST = "labtest"


class CombinationFlag(str, Enum):
    SINGLE = "SINGLE"
    COMBINATION = "COMBINATION"


class Concept(BaseModel):
    """
    Represents a single OMOP concept (a row of CONCEPT).
    This is a node in the vocabulary graph.
    """
    concept_id: int
    concept_name: str
    domain_id: str
    vocabulary_id: str
    concept_class_id: str
    concept_code: str = ""
    standard_concept: Optional[str] = None
    invalid_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not self.invalid_reason

    @property
    def search_text(self) -> str:
        """The text a search term is matched against."""
        return f"{self.concept_id} {self.concept_code} {self.concept_name}".upper()


class ConceptAncestor(BaseModel):
    """
    A precomputed transitive-closure edge from CONCEPT_ANCESTOR.
    Self rows (ancestor == descendant) carry a separation of 0.
    """
    ancestor_concept_id: int
    descendant_concept_id: int
    min_levels_of_separation: int
    max_levels_of_separation: int


class ConceptRelationship(BaseModel):
    """
    A typed, directed edge from CONCEPT_RELATIONSHIP, e.g. 'Maps to'.
    """
    concept_id_1: int
    concept_id_2: int
    relationship_id: str
    valid_start_date: Optional[str] = None
    valid_end_date: Optional[str] = None
    invalid_reason: Optional[str] = None


class VocabularyData(BaseModel):
    """
    A container for all parsed data from an Athena export,
    ready to be indexed or transformed.
    """
    concepts: List[Concept]
    relationships: List[ConceptRelationship]
    ancestors: List[ConceptAncestor]


class HierarchyNode(BaseModel):
    steps_away: int
    concept_name: str
    concept_id: int
    concept_code: str
    vocabulary_id: str
    concept_class_id: str
    root_term: str


class LabTestAttribute(BaseModel):
    relationship_id: str
    value_name: str


class CodeSetRow(BaseModel):
    """
    One terminal code produced by the code set builder.
    """
    root_concept_name: str
    child_vocabulary_id: str
    child_code: str
    child_name: str
    child_concept_id: int
    concept_class_id: str
    combination_flag: Optional[CombinationFlag] = None
    dose_form: Optional[str] = None
    dose_form_group: Optional[str] = None
    relationships: Optional[List[LabTestAttribute]] = None

    def dedup_key(self) -> Tuple[str, str, str, int, str]:
        return (
            self.child_vocabulary_id,
            self.child_code,
            self.child_name,
            self.child_concept_id,
            self.concept_class_id,
        )


class SearchResultRow(BaseModel):
    # Standard representative, null when the searched concept has no standard mapping.
    standard_name: Optional[str] = None
    std_concept_id: Optional[int] = None
    standard_code: Optional[str] = None
    standard_vocabulary: Optional[str] = None
    concept_class_id: Optional[str] = None
    # The concept that matched the search term.
    search_result: str
    searched_concept_id: int
    searched_code: str
    searched_vocabulary: str
    searched_concept_class_id: str
    searched_term: str


class LabTestSearchRow(BaseModel):
    lab_test_type: str
    std_concept_id: int
    search_result: str
    searched_code: str
    searched_concept_class_id: str
    vocabulary_id: str
    property: Optional[str] = None
    scale: Optional[str] = None
    system: Optional[str] = None
    time: Optional[str] = None
    panel_count: int = 0


class LabTestPanelRow(BaseModel):
    lab_test_type: str = "Panel"
    std_concept_id: int
    lab_test_concept_id: int
    search_result: str
    searched_code: str
    searched_concept_class_id: str
    vocabulary_id: str


class SavedCodeSet(BaseModel):
    """
    A code set as handed to persistence. Small sets are materialized;
    large sets keep only what is needed to rebuild them.
    """
    code_set_name: str
    description: Optional[str] = None
    total_concepts: int
    is_materialized: bool
    rows: Optional[List[CodeSetRow]] = None
    anchor_concept_ids: Optional[List[int]] = None
    build_type: Optional[BuildType] = None
    combo_filter: ComboFilter = ComboFilter.ALL
    domain_id: Optional[str] = None


class UMLSSearchResult(BaseModel):
    code: str
    vocabulary: str
    term: str
    source_concept: Optional[str] = None
