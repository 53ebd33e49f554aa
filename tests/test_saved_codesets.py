import pytest

from py_omop_codeset.codeset import CodeSetBuilder
from py_omop_codeset.exceptions import InvalidInputError
from py_omop_codeset.graph import ConceptGraph
from py_omop_codeset.models import BuildType, ComboFilter
from py_omop_codeset.saved_codesets import plan_saved_code_set, rebuild


@pytest.fixture
def builder(graph: ConceptGraph) -> CodeSetBuilder:
    return CodeSetBuilder(graph, max_workers=1)


def test_small_code_set_is_materialized(builder: CodeSetBuilder):
    rows = builder.build([1001])

    saved = plan_saved_code_set("T2DM", rows, anchor_concept_ids=[1001], build_type="hierarchical")

    assert saved.is_materialized
    assert saved.total_concepts == 5
    assert saved.rows == rows
    assert rebuild(saved, builder) == rows


def test_large_code_set_stores_anchors_only(builder: CodeSetBuilder):
    """At or above the threshold only the build inputs are kept, and loading re-derives the rows."""
    rows = builder.build([100], ComboFilter.SINGLE)

    saved = plan_saved_code_set(
        "ritonavir single", rows, anchor_concept_ids=[100], build_type=BuildType.HIERARCHICAL,
        combo_filter="SINGLE", domain_id="Drug", threshold=2,
    )

    assert not saved.is_materialized
    assert saved.rows is None
    assert saved.total_concepts == 2
    assert saved.anchor_concept_ids == [100]
    assert saved.combo_filter == ComboFilter.SINGLE
    assert rebuild(saved, builder) == rows


def test_large_code_set_requires_build_inputs(builder: CodeSetBuilder):
    rows = builder.build([1001])

    with pytest.raises(InvalidInputError, match="anchor_concept_ids"):
        plan_saved_code_set("T2DM", rows, build_type="hierarchical", threshold=1)
    with pytest.raises(InvalidInputError, match="build_type"):
        plan_saved_code_set("T2DM", rows, anchor_concept_ids=[1001], threshold=1)


def test_name_and_rows_are_required(builder: CodeSetBuilder):
    with pytest.raises(InvalidInputError):
        plan_saved_code_set("", builder.build([1001]))
    with pytest.raises(InvalidInputError):
        plan_saved_code_set("empty", [])
