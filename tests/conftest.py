import pytest
from pathlib import Path
from typing import List
from testcontainers.neo4j import Neo4jContainer

from py_omop_codeset.graph import ConceptGraph
from py_omop_codeset.models import Concept, ConceptAncestor, ConceptRelationship, VocabularyData


def _concept(concept_id, name, domain, vocabulary, concept_class, code, standard="S", invalid=None) -> Concept:
    return Concept(
        concept_id=concept_id,
        concept_name=name,
        domain_id=domain,
        vocabulary_id=vocabulary,
        concept_class_id=concept_class,
        concept_code=code,
        standard_concept=standard,
        invalid_reason=invalid,
    )


# --- A small OMOP vocabulary covering conditions, drugs and lab tests ---

CONCEPTS = [
    # Conditions: a SNOMED chain with ICD codes mapping into it
    _concept(1000, "Diabetes mellitus", "Condition", "SNOMED", "Clinical Finding", "73211009"),
    _concept(1001, "Type 2 diabetes mellitus", "Condition", "SNOMED", "Clinical Finding", "44054006"),
    _concept(1002, "Type 2 diabetes mellitus without complication", "Condition", "SNOMED", "Clinical Finding", "313436004"),
    _concept(1100, "Type 2 diabetes mellitus without complications", "Condition", "ICD10CM", "5-char billing code", "E11.9", standard=None),
    _concept(1101, "Type 2 diabetes mellitus", "Condition", "ICD10CM", "3-char nonbill code", "E11", standard=None),
    _concept(1102, "Diabetes mellitus without mention of complication", "Condition", "ICD9CM", "5-dig billing code", "250.00", standard=None),
    _concept(1103, "Type II diabetes mellitus", "Condition", "Read", "Read", "C10F.", standard=None),
    # Drugs: ritonavir, lopinavir and products containing them
    _concept(100, "ritonavir", "Drug", "RxNorm", "Ingredient", "85762"),
    _concept(101, "lopinavir", "Drug", "RxNorm", "Ingredient", "195088"),
    _concept(102, "ritonavir 80 MG/ML Oral Suspension", "Drug", "RxNorm", "Clinical Drug", "1000001", standard=None, invalid="D"),
    _concept(200, "ritonavir 100 MG Oral Tablet", "Drug", "RxNorm", "Clinical Drug", "311372"),
    _concept(201, "lopinavir 200 MG / ritonavir 50 MG Oral Tablet", "Drug", "RxNorm", "Clinical Drug", "597730"),
    _concept(203, "Norvir 100 MG Oral Tablet", "Drug", "NDC", "11-digit NDC", "00074333330", standard=None),
    _concept(300, "Oral Tablet", "Drug", "RxNorm", "Dose Form", "317541"),
    _concept(50, "Antiviral agent", "Drug", "SNOMED", "Substance", "372701004"),
    _concept(60, "ritonavir", "Drug", "ATC", "ATC 5th", "J05AE03", standard="C"),
    _concept(61, "Protease inhibitors", "Drug", "ATC", "ATC 4th", "J05AE", standard="C"),
    # Lab tests: a LOINC test, the panel containing it and its axes
    _concept(2000, "Glucose [Mass/volume] in Serum or Plasma", "Measurement", "LOINC", "Lab Test", "2345-7"),
    _concept(2001, "Basic metabolic panel - Serum or Plasma", "Measurement", "LOINC", "Lab Test", "51990-0"),
    _concept(2100, "Glucose", "Observation", "LOINC", "LOINC Component", "LP14635-4", standard=None),
    _concept(2101, "MCnc", "Meas Value", "LOINC", "LOINC Property", "LP6827-2", standard=None),
    _concept(2102, "Qn", "Meas Value", "LOINC", "LOINC Scale", "LP7753-9", standard=None),
    _concept(2103, "Ser/Plas", "Spec Anatomic Site", "LOINC", "LOINC System", "LP7576-4", standard=None),
    _concept(2104, "Pt", "Meas Value", "LOINC", "LOINC Time", "LP6960-1", standard=None),
    _concept(2200, "Glucose; quantitative, blood", "Measurement", "CPT4", "CPT4", "82947"),
    # Observations: a code whose class marks it as a multi-ingredient product
    _concept(3000, "Allergy to drug", "Observation", "SNOMED", "Clinical Finding", "416098002"),
    _concept(3001, "Allergy to combination drug", "Observation", "ICD10CM", "Multiple Ingredients", "Z88.8", standard=None),
]


def _maps_to(source: int, target: int) -> ConceptRelationship:
    return ConceptRelationship(concept_id_1=source, concept_id_2=target, relationship_id="Maps to")


def _rel(source: int, target: int, relationship_id: str) -> ConceptRelationship:
    return ConceptRelationship(concept_id_1=source, concept_id_2=target, relationship_id=relationship_id)


RELATIONSHIPS = [
    # Standard concepts map to themselves
    *[_maps_to(cid, cid) for cid in (1000, 1001, 1002, 100, 101, 200, 201, 2000, 2001, 2200, 3000)],
    _maps_to(3001, 3000),
    _maps_to(1100, 1002),
    _maps_to(1101, 1001),
    _maps_to(1102, 1002),
    _maps_to(1103, 1001),
    _maps_to(203, 200),
    _rel(200, 300, "RxNorm has dose form"),
    _rel(201, 300, "RxNorm has dose form"),
    _rel(1001, 1000, "Is a"),
    _rel(1002, 1001, "Is a"),
    _rel(2000, 2100, "Has component"),
    _rel(2000, 2101, "Has property"),
    _rel(2000, 2102, "Has scale type"),
    _rel(2000, 2103, "Has system"),
    _rel(2000, 2104, "Has time aspect"),
    _rel(2001, 2000, "Panel contains"),
    _rel(2000, 2001, "Contained in panel"),
]


def _ancestor(ancestor: int, descendant: int, levels: int) -> ConceptAncestor:
    return ConceptAncestor(
        ancestor_concept_id=ancestor,
        descendant_concept_id=descendant,
        min_levels_of_separation=levels,
        max_levels_of_separation=levels,
    )


ANCESTORS = [
    *[_ancestor(cid, cid, 0) for cid in (1000, 1001, 1002, 100, 101, 200, 201, 60, 61, 50, 2000, 2001, 2200, 3000)],
    _ancestor(1000, 1001, 1), _ancestor(1000, 1002, 2), _ancestor(1001, 1002, 1),
    _ancestor(100, 200, 1), _ancestor(100, 201, 1), _ancestor(101, 201, 1),
    _ancestor(60, 100, 1), _ancestor(60, 200, 2), _ancestor(60, 201, 2),
    _ancestor(61, 60, 1), _ancestor(61, 100, 2), _ancestor(61, 200, 3), _ancestor(61, 201, 3),
    _ancestor(50, 100, 2),
]


@pytest.fixture
def vocabulary() -> VocabularyData:
    return VocabularyData(concepts=CONCEPTS, relationships=RELATIONSHIPS, ancestors=ANCESTORS)


@pytest.fixture
def graph(vocabulary: VocabularyData) -> ConceptGraph:
    """The sample vocabulary indexed in memory."""
    return ConceptGraph.from_vocabulary(vocabulary)


def _write_tsv(filepath: Path, header: List[str], rows: List[List]):
    """Helper to create a tab-delimited Athena file."""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        f.write("\t".join(header) + "\n")
        for row in rows:
            f.write("\t".join("" if value is None else str(value) for value in row) + "\n")


@pytest.fixture
def athena_dir(tmp_path: Path, vocabulary: VocabularyData) -> Path:
    """Writes the sample vocabulary as an Athena export."""
    vocab_dir = tmp_path / "vocabulary"
    _write_tsv(
        vocab_dir / "CONCEPT.csv",
        ["concept_id", "concept_name", "domain_id", "vocabulary_id", "concept_class_id",
         "standard_concept", "concept_code", "valid_start_date", "valid_end_date", "invalid_reason"],
        [
            [c.concept_id, c.concept_name, c.domain_id, c.vocabulary_id, c.concept_class_id,
             c.standard_concept, c.concept_code, "19700101", "20991231", c.invalid_reason]
            for c in vocabulary.concepts
        ],
    )
    _write_tsv(
        vocab_dir / "CONCEPT_RELATIONSHIP.csv",
        ["concept_id_1", "concept_id_2", "relationship_id", "valid_start_date", "valid_end_date", "invalid_reason"],
        [
            [r.concept_id_1, r.concept_id_2, r.relationship_id, "19700101", "20991231", None]
            for r in vocabulary.relationships
        ] + [[100, 200, "RxNorm ing of", "19700101", "20991231", None]],
    )
    _write_tsv(
        vocab_dir / "CONCEPT_ANCESTOR.csv",
        ["ancestor_concept_id", "descendant_concept_id", "min_levels_of_separation", "max_levels_of_separation"],
        [
            [a.ancestor_concept_id, a.descendant_concept_id, a.min_levels_of_separation, a.max_levels_of_separation]
            for a in vocabulary.ancestors
        ],
    )
    return vocab_dir


# --- Neo4j test container ---

NEO4J_IMAGE = "neo4j:5.18"


@pytest.fixture(scope="session")
def neo4j_container():
    """
    Starts a Neo4j container for the test session. Tests that use it are skipped
    when no Docker daemon is reachable.
    """
    try:
        container = Neo4jContainer(image=NEO4J_IMAGE, password="password")
        container.with_env("NEO4J_AUTH", "neo4j/password")
        container.start()
    except Exception as e:
        pytest.skip(f"Neo4j test container unavailable: {e}")
    driver = container.get_driver()
    container.driver = driver
    yield container
    driver.close()
    container.stop()


@pytest.fixture
def neo4j_driver(neo4j_container):
    """
    Provides a driver to the test Neo4j container and empties the database
    before and after each test function.
    """
    driver = neo4j_container.driver
    with driver.session() as session:
        session.run("MATCH (n) DETACH DELETE n")
    yield driver
    with driver.session() as session:
        session.run("MATCH (n) DETACH DELETE n")
