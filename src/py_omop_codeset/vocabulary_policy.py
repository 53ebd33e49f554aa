# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Static vocabulary rules used by search, hierarchy resolution and code set building.

Which vocabularies may surface for a clinical domain, which concept classes are
admitted for drugs at each step, and how a free-text RxNorm dose form name is
grouped into a coarse route of administration.
"""
from typing import Callable, FrozenSet, List, Optional, Tuple

from .models import Concept, Domain

DEFAULT_DOSE_FORM_GROUP = "Other"

# Domain -> vocabularies a result row may come from.
DOMAIN_VOCABULARIES = {
    Domain.CONDITION.value: frozenset({"ICD10CM", "SNOMED", "ICD9CM"}),
    Domain.OBSERVATION.value: frozenset({"ICD10CM", "SNOMED", "LOINC", "CPT4", "HCPCS"}),
    Domain.DRUG.value: frozenset({"RxNorm", "NDC", "CPT4", "CVX", "HCPCS", "ATC"}),
    Domain.MEASUREMENT.value: frozenset({"LOINC", "CPT4", "SNOMED", "HCPCS"}),
    Domain.PROCEDURE.value: frozenset({"CPT4", "HCPCS", "SNOMED", "ICD9PCS", "LOINC", "ICD10PCS"}),
}

ATC_LEVEL_CLASSES = frozenset({"ATC 5th", "ATC 4th", "ATC 3rd", "ATC 2nd", "ATC 1st"})
RXNORM_HIERARCHY_CLASSES = frozenset({"Clinical Drug", "Ingredient"})

# Drug concept classes a code set row may carry.
DRUG_CODESET_CLASSES = frozenset({
    "Clinical Drug", "Branded Drug Form", "Clinical Drug Form",
    "Quant Branded Drug", "Quant Clinical Drug", "11-digit NDC",
})

# Drug concept classes a search may return.
DRUG_SEARCH_CLASSES = frozenset({
    "Clinical Drug", "Branded Drug", "Ingredient", "Clinical Pack", "Branded Pack",
    "Quant Clinical Drug", "Quant Branded Drug", "11-digit NDC",
})

INGREDIENT_CLASS = "Ingredient"
MULTIPLE_INGREDIENTS_CLASS = "Multiple Ingredients"

# Dose form keyword groups, evaluated top to bottom; the first hit wins.
# "Auto-Injector" must resolve to Injectable before the Oral keywords are tried.
DOSE_FORM_GROUP_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("INJECT", "SYRINGE", "AUTO-INJECTOR", "CARTRIDGE"), "Injectable Product"),
    (("ORAL TABLET", "TABLET", "ORAL", "LOZENGE"), "Oral"),
    (("BUCCAL", "SUBLINGUAL"), "Buccal/Sublingual Product"),
    (("INHAL",), "Inhalant Product"),
    (("NASAL",), "Nasal Product"),
    (("OPHTHALMIC",), "Ophthalmic Product"),
    (("TOPICAL",), "Topical Product"),
    (("PATCH", "MEDICATED PAD", "MEDICATED TAPE"), "Transdermal/Patch Product"),
    (("SUPPOSITORY",), "Suppository Product"),
    (("IMPLANT", "INTRAUTERINE SYSTEM"), "Drug Implant Product"),
    (("IRRIGATION",), "Irrigation Product"),
    (("INTRAVESICAL",), "Intravesical Product"),
    (("INTRATRACHEAL",), "Intratracheal Product"),
    (("INTRAPERITONEAL",), "Intraperitoneal Product"),
]

ConceptRule = Callable[[Concept], bool]


def _domain_value(domain) -> str:
    return domain.value if isinstance(domain, Domain) else str(domain)


def allowed_vocabularies(domain) -> FrozenSet[str]:
    """Maps a domain to the vocabularies allowed for it. Unknown domains allow nothing."""
    return DOMAIN_VOCABULARIES.get(_domain_value(domain), frozenset())


def is_known_domain(domain) -> bool:
    """Device is a known domain even though no vocabulary is allowed for it."""
    return _domain_value(domain) in {d.value for d in Domain}


def dose_form_group(dose_form_name: Optional[str]) -> str:
    """Groups an RxNorm dose form name (e.g. 'Injection Solution') into its route category."""
    if not dose_form_name:
        return DEFAULT_DOSE_FORM_GROUP
    name_upper = dose_form_name.upper()
    for keywords, group in DOSE_FORM_GROUP_RULES:
        if any(keyword in name_upper for keyword in keywords):
            return group
    return DEFAULT_DOSE_FORM_GROUP


def _drug_ancestor_rule(concept: Concept) -> bool:
    if concept.vocabulary_id == "ATC":
        return concept.concept_class_id in ATC_LEVEL_CLASSES
    if concept.vocabulary_id == "RxNorm":
        return concept.concept_class_id in RXNORM_HIERARCHY_CLASSES
    return False


def _drug_descendant_rule(concept: Concept) -> bool:
    # ATC is only admitted above the queried drug, never below it.
    return concept.vocabulary_id == "RxNorm" and concept.concept_class_id in RXNORM_HIERARCHY_CLASSES


def _any_concept(concept: Concept) -> bool:
    return True


# Per-domain class rules for hierarchy rows, as (domain, ancestor rule, descendant rule).
HIERARCHY_CLASS_RULES: List[Tuple[str, ConceptRule, ConceptRule]] = [
    (Domain.DRUG.value, _drug_ancestor_rule, _drug_descendant_rule),
]


def hierarchy_class_rules(domain) -> Tuple[ConceptRule, ConceptRule]:
    """Returns the (ancestor, descendant) class rules for a domain."""
    domain_value = _domain_value(domain)
    for rule_domain, ancestor_rule, descendant_rule in HIERARCHY_CLASS_RULES:
        if rule_domain == domain_value:
            return ancestor_rule, descendant_rule
    return _any_concept, _any_concept


def passes_search_class_rule(concept: Concept) -> bool:
    return concept.domain_id != Domain.DRUG.value or concept.concept_class_id in DRUG_SEARCH_CLASSES


def passes_codeset_class_rule(concept: Concept) -> bool:
    return concept.domain_id != Domain.DRUG.value or concept.concept_class_id in DRUG_CODESET_CLASSES
