import pytest

from py_omop_codeset.models import Concept, Domain
from py_omop_codeset.vocabulary_policy import (
    allowed_vocabularies,
    dose_form_group,
    hierarchy_class_rules,
    is_known_domain,
    passes_codeset_class_rule,
    passes_search_class_rule,
)


@pytest.mark.parametrize("domain, expected", [
    ("Condition", {"ICD10CM", "SNOMED", "ICD9CM"}),
    ("Observation", {"ICD10CM", "SNOMED", "LOINC", "CPT4", "HCPCS"}),
    ("Drug", {"RxNorm", "NDC", "CPT4", "CVX", "HCPCS", "ATC"}),
    ("Measurement", {"LOINC", "CPT4", "SNOMED", "HCPCS"}),
    ("Procedure", {"CPT4", "HCPCS", "SNOMED", "ICD9PCS", "LOINC", "ICD10PCS"}),
])
def test_allowed_vocabularies(domain, expected):
    assert allowed_vocabularies(domain) == expected


def test_allowed_vocabularies_accepts_enum():
    assert allowed_vocabularies(Domain.DRUG) == allowed_vocabularies("Drug")


def test_unrecognized_domain_allows_nothing():
    assert allowed_vocabularies("Spec Anatomic Site") == frozenset()
    assert allowed_vocabularies("Device") == frozenset()
    assert not is_known_domain("Spec Anatomic Site")
    assert is_known_domain("Device")


@pytest.mark.parametrize("name, expected", [
    ("Injection Solution", "Injectable Product"),
    ("Oral Tablet", "Oral"),
    ("Xyzzy Foam", "Other"),
    ("Auto-Injector", "Injectable Product"),
    ("Prefilled Syringe", "Injectable Product"),
    ("Chewable Tablet", "Oral"),
    ("Sublingual Tablet", "Oral"),  # TABLET is tried before SUBLINGUAL
    ("Buccal Film", "Buccal/Sublingual Product"),
    ("Metered Dose Inhaler", "Inhalant Product"),
    ("Nasal Spray", "Nasal Product"),
    ("Ophthalmic Solution", "Ophthalmic Product"),
    ("Topical Cream", "Topical Product"),
    ("Transdermal System Patch", "Transdermal/Patch Product"),
    ("Rectal Suppository", "Suppository Product"),
    ("Intrauterine System", "Drug Implant Product"),
    ("Irrigation Solution", "Irrigation Product"),
    ("Intravesical Solution", "Intravesical Product"),
    ("Intratracheal Suspension", "Intratracheal Product"),
    ("Intraperitoneal Solution", "Intraperitoneal Product"),
])
def test_dose_form_group(name, expected):
    assert dose_form_group(name) == expected


def test_dose_form_group_is_case_insensitive():
    assert dose_form_group("injection solution") == "Injectable Product"


def test_dose_form_group_without_name():
    assert dose_form_group(None) == "Other"
    assert dose_form_group("") == "Other"


def _drug(vocabulary, concept_class, domain="Drug"):
    return Concept(
        concept_id=1, concept_name="x", domain_id=domain,
        vocabulary_id=vocabulary, concept_class_id=concept_class,
    )


def test_drug_hierarchy_rules_are_asymmetric():
    ancestor_rule, descendant_rule = hierarchy_class_rules("Drug")

    assert ancestor_rule(_drug("ATC", "ATC 4th"))
    assert ancestor_rule(_drug("RxNorm", "Ingredient"))
    assert not ancestor_rule(_drug("RxNorm", "Branded Drug"))
    assert not ancestor_rule(_drug("SNOMED", "Substance"))

    assert not descendant_rule(_drug("ATC", "ATC 4th"))
    assert descendant_rule(_drug("RxNorm", "Clinical Drug"))


def test_non_drug_hierarchy_rules_accept_everything():
    ancestor_rule, descendant_rule = hierarchy_class_rules("Condition")
    concept = _drug("SNOMED", "Clinical Finding", domain="Condition")
    assert ancestor_rule(concept) and descendant_rule(concept)


def test_class_rules_only_constrain_drugs():
    assert passes_codeset_class_rule(_drug("NDC", "11-digit NDC"))
    assert not passes_codeset_class_rule(_drug("RxNorm", "Ingredient"))
    assert passes_search_class_rule(_drug("RxNorm", "Ingredient"))
    assert not passes_search_class_rule(_drug("RxNorm", "Dose Form"))
    assert passes_codeset_class_rule(_drug("SNOMED", "Clinical Finding", domain="Condition"))
