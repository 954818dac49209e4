"""
Unit tests for owner-name classification.
"""

import pytest
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from ownermatch.classify.business_filter import BUSINESS_ENTITY, INDIVIDUAL, BusinessEntityFilter
from ownermatch.classify.classifier import FAILURE_COLUMNS, NameClassifier, classify
from ownermatch.classify.rules import CASCADE, MASTER_LIST_RULE, rules_by_id
from ownermatch.classify.signatures import NameSignature, standardize_owner_name
from ownermatch.config import BUSINESS_TERMS
from ownermatch.entities.entity import EntityType, Household, Individual
from ownermatch.errors import ClassificationFailure


SAMPLE_NAMES = [
    "SMITH, JOHN",
    "JOHN SMITH",
    "SMITH, JOHN A",
    "SMITH JOHN A",
    "JOHN A SMITH",
    "JOHN ALBERT SMITH",
    "SMITH, JOHN & MARY",
    "SMITH JOHN & MARY",
    "SMITH, JOHN, SMITH, MARY",
    "SMITH, JOHN, JONES, MARY",
    "SMITH, JOHN A & MARY B",
    "JOHN SMITH & MARY JONES",
    "HARBOR POND LLC",
    "ACME HOLDINGS",
    "SMITH JOHN A TRUST",
    "BLOCK ISLAND PROPERTIES INC",
    "SMITH, JOHN TRUSTEE",
    "SMITH FAMILY REALTY TRUST OF 1998",
    "SMITH JOHN,",
]


class TestSignatures:
    """Test cases for name signatures."""

    def test_standardize_comma_spacing(self):
        assert standardize_owner_name("  smith ,john ") == "SMITH, JOHN"
        assert standardize_owner_name("SMITH JOHN ,") == "SMITH JOHN,"
        assert standardize_owner_name(None) == ""

    def test_signature_profile(self):
        signature = NameSignature("SMITH, JOHN & MARY", frozenset(BUSINESS_TERMS))
        assert signature.word_count == 4
        assert signature.punctuation.has_commas
        assert signature.punctuation.has_ampersand
        assert not signature.has_business_terms
        assert signature.first_word_ends_with_comma()
        assert signature.ampersand_index() == 2

    def test_business_terms_match_whole_words(self):
        signature = NameSignature("COLLINS TRUSTY", frozenset(BUSINESS_TERMS))
        assert not signature.has_business_terms
        assert NameSignature("SMITH TRUST,", frozenset(BUSINESS_TERMS)).has_business_terms


class TestNameClassifier:
    """Test cases for the rule cascade."""

    def setup_method(self):
        self.classifier = NameClassifier()

    def test_last_comma_first(self):
        entity = self.classifier.classify("SMITH, JOHN")
        assert isinstance(entity, Individual)
        assert entity.rule == "two_word_last_first"
        assert str(entity.name.last_name) == "SMITH"
        assert str(entity.name.first_name) == "JOHN"

    def test_first_last(self):
        entity = self.classifier.classify("JOHN SMITH")
        assert isinstance(entity, Individual)
        assert entity.rule == "two_word_first_last"
        assert str(entity.name.first_name) == "JOHN"
        assert str(entity.name.last_name) == "SMITH"

    def test_shared_last_name_household(self):
        entity = self.classifier.classify("SMITH, JOHN & MARY")
        assert isinstance(entity, Household)
        assert entity.rule == "four_word_shared_last_ampersand"
        assert entity.display_name == "SMITH HOUSEHOLD"

        member_names = sorted(m.name.complete_name for m in entity.members)
        assert member_names == ["JOHN SMITH", "MARY SMITH"]
        assert all(m.household_key == entity.key for m in entity.members)

    def test_three_word_patterns(self):
        assert self.classifier.detect_rule("SMITH, JOHN A") == "three_word_last_first_other"
        assert self.classifier.detect_rule("SMITH JOHN A") == "three_word_last_first_initial"
        assert self.classifier.detect_rule("JOHN A SMITH") == "three_word_middle_initial"
        assert self.classifier.detect_rule("JOHN ALBERT SMITH") == "three_word_full"

        entity = self.classifier.classify("SMITH JOHN A")
        assert str(entity.name.last_name) == "SMITH"
        assert str(entity.name.first_name) == "JOHN"
        assert str(entity.name.other_names) == "A"

    def test_last_comma_first_other_is_single_member_household(self):
        entity = self.classifier.classify("SMITH, JOHN A")
        assert isinstance(entity, Household)
        assert entity.rule == "three_word_last_first_other"
        assert entity.display_name == "JOHN A SMITH"

        assert len(entity.members) == 1
        member = entity.members[0].name
        assert str(member.last_name) == "SMITH"
        assert str(member.first_name) == "JOHN"
        assert str(member.other_names) == "A"

    def test_detached_commas_are_standardized(self):
        assert self.classifier.detect_rule("SMITH , JOHN A") == "three_word_last_first_other"
        assert self.classifier.detect_rule("SMITH,, JOHN") == "three_word_last_first_other"
        assert self.classifier.detect_rule("ACME , HOLDINGS LLC") == "three_word_business_comma"

    def test_four_word_households(self):
        repeated = self.classifier.classify("SMITH, JOHN, SMITH, MARY")
        assert repeated.rule == "four_word_repeated_last"
        assert repeated.display_name == "SMITH HOUSEHOLD"

        two_names = self.classifier.classify("SMITH, JOHN, JONES, MARY")
        assert two_names.rule == "four_word_two_last_names"
        assert two_names.display_name == "SMITH-JONES HOUSEHOLD"
        assert sorted(m.name.complete_name for m in two_names.members) == ["JOHN SMITH", "MARY JONES"]

        ampersand = self.classifier.classify("SMITH JOHN & MARY")
        assert ampersand.rule == "four_word_ampersand"
        assert len(ampersand.members) == 2

    def test_multi_word_household(self):
        entity = self.classifier.classify("SMITH, JOHN A & MARY B")
        assert entity.rule == "multi_word_shared_last"
        assert entity.entity_type == EntityType.HOUSEHOLD
        assert sorted(m.name.complete_name for m in entity.members) == ["JOHN A SMITH", "MARY B SMITH"]

    def test_unstructured_multi_word_name_falls_back(self):
        entity = self.classifier.classify("JOHN SMITH & MARY JONES")
        assert entity.rule == "multi_word_unstructured"
        assert entity.entity_type == EntityType.HOUSEHOLD

    def test_business_and_legal_construct(self):
        llc = self.classifier.classify("HARBOR POND LLC")
        assert llc.entity_type == EntityType.LEGAL_CONSTRUCT
        assert llc.rule == "three_word_business"

        holdings = self.classifier.classify("ACME HOLDINGS")
        assert holdings.entity_type == EntityType.BUSINESS

        trust = self.classifier.classify("SMITH JOHN A TRUST")
        assert trust.entity_type == EntityType.LEGAL_CONSTRUCT

    def test_master_list(self):
        entity = self.classifier.classify("Town of New Shoreham")
        assert entity.rule == MASTER_LIST_RULE
        assert entity.entity_type == EntityType.BUSINESS

    def test_trailing_comma_needs_review(self):
        with pytest.raises(ClassificationFailure) as excinfo:
            self.classifier.classify("SMITH JOHN,")
        assert excinfo.value.rule == "two_word_trailing_comma"

    def test_empty_name_fails(self):
        with pytest.raises(ClassificationFailure):
            self.classifier.classify("   ")
        with pytest.raises(ClassificationFailure):
            self.classifier.classify(None)

    def test_cascade_exclusivity(self):
        for name in SAMPLE_NAMES:
            assert len(self.classifier.matching_rules(name)) <= 1, name

    def test_every_name_gets_exactly_one_outcome(self):
        for name in SAMPLE_NAMES:
            try:
                entity = self.classifier.classify(name)
            except ClassificationFailure:
                continue
            assert entity.entity_type in EntityType
            assert entity.rule is not None

    def test_classification_is_idempotent(self):
        for name in SAMPLE_NAMES[:12]:
            first = self.classifier.classify(name)
            second = self.classifier.classify(name)
            assert first.entity_type == second.entity_type
            assert first.rule == second.rule
            assert first.display_name == second.display_name

    def test_fallback_rules_are_last(self):
        ids = [rule.rule_id for rule in CASCADE]
        assert ids[-3:] == ["fallback_household", "fallback_individual", "fallback_organization"]
        assert len(rules_by_id()) == len(CASCADE)

    def test_batch_collects_failures(self):
        records = [
            {"raw_name": "SMITH, JOHN", "location_identifier": "101"},
            {"raw_name": "SMITH JOHN,", "location_identifier": "102"},
            {"raw_name": "", "location_identifier": "103"},
            {"raw_name": "HARBOR POND LLC", "location_identifier": "104"},
        ]
        entities, failures = self.classifier.classify_batch(records)

        assert len(entities) == 2
        assert list(failures.columns) == FAILURE_COLUMNS
        assert list(failures["location_identifier"]) == ["102", "103"]

        summary = self.classifier.rule_summary(entities)
        assert summary["count"].sum() == 2

    def test_module_level_classify(self):
        entity = classify("SMITH, JOHN", {"email": "JSmith@Example.com"})
        assert isinstance(entity, Individual)
        assert str(entity.contact_info.email) == "jsmith@example.com"


class TestBusinessEntityFilter:
    """Test cases for the two-tier business entity filter."""

    def setup_method(self):
        self.filter = BusinessEntityFilter()

    def test_complete_exclusion(self):
        result = self.filter.classify_and_clean_name("TOWN OF NEW SHOREHAM")
        assert result["type"] == BUSINESS_ENTITY
        assert result["should_exclude_from_matching"]
        assert self.filter.personal_name("TOWN OF NEW SHOREHAM") is None

    def test_term_stripping(self):
        result = self.filter.classify_and_clean_name("HARBOR POND LLC")
        assert result["type"] == INDIVIDUAL
        assert result["cleaned_name"] == "HARBOR POND"
        assert not result["should_exclude_from_matching"]

    def test_trailing_comma_cleanup(self):
        assert self.filter.strip_business_terms("SMITH, JOHN, TRUSTEE") == "SMITH, JOHN"

    def test_business_only_name_is_excluded(self):
        result = self.filter.classify_and_clean_name("HOLDINGS LLC")
        assert result["type"] == BUSINESS_ENTITY
        assert result["should_exclude_from_matching"]

    def test_additional_exclusions(self):
        self.filter.add_exclusions(["block island ferry"])
        assert self.filter.is_complete_business_entity(" Block Island Ferry ")


if __name__ == "__main__":
    pytest.main([__file__])
