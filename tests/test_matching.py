"""
Unit tests for entity scoring and best-match selection.
"""

import pytest
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from ownermatch.classify.classifier import classify
from ownermatch.entities.contact import ContactInfo
from ownermatch.entities.entity import Business, EntityType, Household, Individual
from ownermatch.entities.names import HouseholdName, IndividualName, OrganizationName
from ownermatch.match.calibration import collect_scores
from ownermatch.match.entity_scorer import EntityScorer, compare_entities
from ownermatch.match.selector import (
    METHOD_NONE, METHOD_PAIR_CUTOFF, METHOD_PERCENTILE, METHOD_TOP_N, RESULT_COLUMNS,
    CandidateMatch, MatchSelector, find_best_matches, type_pair_key
)


def make_business(identifier: str) -> Business:
    return Business(location_identifier=identifier, source="VISION_APPRAISAL",
                    name=OrganizationName(f"OWNER {identifier} LLC"))


def make_person(first: str, last: str, identifier: str, source: str = "VISION_APPRAISAL",
                email: str = None) -> Individual:
    return Individual(location_identifier=identifier, source=source,
                      name=IndividualName(first_name=first, last_name=last),
                      contact_info=ContactInfo(email=email) if email else None)


class TestMatchSelector:
    """Test cases for per-type selection."""

    def setup_method(self):
        self.scores = [0.99, 0.97, 0.60, 0.55, 0.50, 0.45, 0.40, 0.35,
                       0.30, 0.25, 0.20, 0.18, 0.15, 0.12, 0.10]
        self.selector = MatchSelector({
            "percentile_threshold": 98,
            "minimum_group_size": 10,
            "global_minimum_score": 0.0,
            "per_type_pair_minimums": {},
            "per_type_pair_cutoffs": {}
        })

    def _candidates(self, scores, name_scores=None):
        name_scores = name_scores or [0.0] * len(scores)
        return [CandidateMatch(make_business(str(i)), score, name_score)
                for i, (score, name_score) in enumerate(zip(scores, name_scores))]

    def test_type_pair_key(self):
        assert type_pair_key(EntityType.INDIVIDUAL, EntityType.HOUSEHOLD) == "individual:household"
        assert type_pair_key(EntityType.LEGAL_CONSTRUCT, EntityType.BUSINESS) == "legal_construct:business"

    def test_percentile_value(self):
        assert self.selector.percentile_value(self.scores) == 0.99
        assert self.selector.percentile_value([]) == 0.0

        self.selector.update_config({"percentile_threshold": 0})
        assert self.selector.percentile_value([0.9, 0.8]) == 0.0

    def test_top_n_when_percentile_group_is_small(self):
        result = self.selector.select(EntityType.BUSINESS, EntityType.BUSINESS, self._candidates(self.scores))

        assert len(result.matches) == 10
        assert result.selection_method == METHOD_TOP_N
        assert result.percentile_value == 0.99
        assert [m.score for m in result.matches] == self.scores[:10]
        assert result.total == 15

    def test_percentile_group_when_large_enough(self):
        self.selector.update_config({"minimum_group_size": 2, "percentile_threshold": 50})
        result = self.selector.select(EntityType.BUSINESS, EntityType.BUSINESS, self._candidates(self.scores))

        # floor(15 * 0.5) = 7
        assert result.percentile_value == 0.35
        assert result.selection_method == METHOD_PERCENTILE
        assert [m.score for m in result.matches] == self.scores[:8]

    def test_floor_applies_after_selection(self):
        self.selector.update_config({"global_minimum_score": 0.31})
        result = self.selector.select(EntityType.BUSINESS, EntityType.BUSINESS, self._candidates(self.scores))

        assert all(m.score >= 0.31 for m in result.matches)
        assert len(result.matches) == 8

    def test_pair_floor_uses_larger_minimum(self):
        self.selector.update_config({"global_minimum_score": 0.31,
                                     "per_type_pair_minimums": {"business:business": 0.5}})
        assert self.selector.minimum_score(EntityType.BUSINESS, EntityType.BUSINESS) == 0.5
        assert self.selector.minimum_score(EntityType.BUSINESS, EntityType.HOUSEHOLD) == 0.31

    def test_type_pair_cutoff(self):
        selector = MatchSelector({"percentile_threshold": 50, "global_minimum_score": 0.31})
        candidates = [CandidateMatch(make_person("A", "B", str(i)), score)
                      for i, score in enumerate([0.9, 0.8, 0.7, 0.6])]
        result = selector.select(EntityType.INDIVIDUAL, EntityType.INDIVIDUAL, candidates)

        assert result.percentile_value == 0.7
        assert result.effective_cutoff == 0.75
        assert result.selection_method == METHOD_PAIR_CUTOFF
        assert [m.score for m in result.matches] == [0.9, 0.8]

    def test_percentile_above_cutoff_keeps_percentile_method(self):
        selector = MatchSelector({"global_minimum_score": 0.31})
        candidates = [CandidateMatch(make_person("A", "B", str(i)), score)
                      for i, score in enumerate([0.9, 0.8, 0.7, 0.6])]
        result = selector.select(EntityType.INDIVIDUAL, EntityType.INDIVIDUAL, candidates)

        assert result.effective_cutoff == 0.9
        assert result.selection_method == METHOD_PERCENTILE
        assert [m.score for m in result.matches] == [0.9]

    def test_name_override_adds_excluded_candidate(self):
        name_scores = [0.0] * 15
        name_scores[12] = 0.99
        self.selector.update_config({"global_minimum_score": 0.1})
        result = self.selector.select(EntityType.BUSINESS, EntityType.BUSINESS,
                                      self._candidates(self.scores, name_scores))

        assert len(result.matches) == 11
        assert result.selection_method == f"{METHOD_TOP_N}+1_name_override"
        overridden = [m for m in result.matches if m.name_override]
        assert len(overridden) == 1
        assert overridden[0].score == 0.15

    def test_name_override_still_respects_floor(self):
        name_scores = [0.0] * 15
        name_scores[14] = 0.99
        self.selector.update_config({"global_minimum_score": 0.31})
        result = self.selector.select(EntityType.BUSINESS, EntityType.BUSINESS,
                                      self._candidates(self.scores, name_scores))

        assert not any(m.name_override for m in result.matches)
        assert result.selection_method == METHOD_TOP_N

    def test_no_candidates(self):
        result = self.selector.select(EntityType.BUSINESS, EntityType.HOUSEHOLD, [])
        assert result.matches == []
        assert result.percentile_value is None
        assert result.selection_method == METHOD_NONE


class TestEntityScorer:
    """Test cases for cross-type entity scoring."""

    def setup_method(self):
        self.scorer = EntityScorer()
        self.mary = make_person("MARY", "SMITH", "101", email="mary@example.com")

        self.member_john = Individual(name=IndividualName(first_name="JOHN", last_name="SMITH"))
        self.member_mary = Individual(name=IndividualName(first_name="MARY", last_name="SMITH"),
                                      contact_info=ContactInfo(email="mary@example.com"))
        self.household = Household(
            location_identifier="202", source="BLOOMERANG_CSV",
            name=HouseholdName("SMITH HOUSEHOLD", [self.member_john.name, self.member_mary.name]),
            contact_info=ContactInfo(email="office@other.com"),
            members=[self.member_john, self.member_mary]
        )

    def test_individual_scored_through_household_member(self):
        result = self.scorer.compare(self.mary, self.household)

        assert result.score == pytest.approx(1.0)
        assert result.matched_member is self.member_mary
        assert result.comparison_type == "Individual-to-AggregateHousehold"

    def test_household_comparison_is_symmetric(self):
        forward = self.scorer.compare(self.mary, self.household)
        backward = self.scorer.compare(self.household, self.mary)
        assert forward.score == pytest.approx(backward.score)

    def test_excluded_name_kept_out_of_personal_matching(self):
        town = Individual(location_identifier="303", source="VISION_APPRAISAL",
                          name=IndividualName(first_name="NEW", last_name="SHOREHAM"),
                          raw_name="TOWN OF NEW SHOREHAM")
        holdings = make_business("404")

        assert self.scorer.is_excluded(town)
        assert self.scorer.compare(town, self.mary) is None
        assert self.scorer.compare(self.mary, town) is None
        assert self.scorer.compare(town, holdings) is not None

    def test_business_terms_stripped_from_personal_name(self):
        trustee = Individual(location_identifier="505", source="VISION_APPRAISAL",
                             name=IndividualName(first_name="MARY", last_name="SMITH"),
                             raw_name="SMITH, MARY TRUSTEE")
        other = Individual(location_identifier="606", source="BLOOMERANG_CSV",
                           name=IndividualName(first_name="MARY", last_name="SMITH"),
                           raw_name="MARY SMITH")

        result = self.scorer.compare(trustee, other)
        assert result.name_score == pytest.approx(1.0)

    def test_classified_master_list_owner_kept_out_of_personal_matching(self):
        town = classify("TOWN OF NEW SHOREHAM", {"email": "mary@example.com"}, location_identifier="808")

        assert town.entity_type == EntityType.BUSINESS
        assert self.scorer.is_excluded(town)
        assert self.scorer.compare(town, self.mary) is None
        assert self.scorer.compare(self.mary, town) is None
        assert self.scorer.compare(self.household, town) is None
        assert self.scorer.compare(town, make_business("909")) is not None

    def test_legal_construct_name_compared_without_business_terms(self):
        harbor = classify("HARBOR POND LLC", location_identifier="102")
        person = classify("HARBOR POND", source="BLOOMERANG_CSV", account_number="5003")

        assert harbor.entity_type == EntityType.LEGAL_CONSTRUCT
        assert person.entity_type == EntityType.INDIVIDUAL

        forward = self.scorer.compare(person, harbor)
        backward = self.scorer.compare(harbor, person)
        assert forward.name_score == pytest.approx(1.0)
        assert backward.name_score == pytest.approx(1.0)

    def test_compare_entities(self):
        results = compare_entities(self.mary, [self.household, make_business("707")])
        assert len(results) == 2
        assert all(r is None or 0.0 <= r.score <= 1.0 for r in results)


class TestFindBestMatches:
    """Test cases for end-to-end selection over entity groups."""

    def setup_method(self):
        self.john = make_person("JOHN", "SMITH", "1")
        self.john_copy = make_person("JOHN", "SMITH", "2", source="BLOOMERANG_CSV")
        self.mary = make_person("MARY", "JONES", "3")
        self.holdings = make_business("4")
        self.candidates = {
            EntityType.INDIVIDUAL: [self.john, self.john_copy, self.mary],
            EntityType.BUSINESS: [self.holdings]
        }

    def test_self_is_skipped(self):
        result = find_best_matches(self.john, self.candidates)

        assert result.comparison_count == 3
        individuals = result.matches_by_type[EntityType.INDIVIDUAL]
        assert [m.entity for m in individuals.matches] == [self.john_copy]
        assert result.best_match().entity is self.john_copy

    def test_every_type_reported(self):
        result = find_best_matches(self.john, self.candidates)
        assert set(result.matches_by_type) == set(EntityType)
        assert result.matches_by_type[EntityType.HOUSEHOLD].selection_method == METHOD_NONE

    def test_result_frame(self):
        result = find_best_matches(self.john, self.candidates)
        frame = result.to_frame()

        assert list(frame.columns) == RESULT_COLUMNS
        assert len(frame) == len(result.all_matches())
        assert frame.iloc[0]["base_key"] == "VISION_APPRAISAL:1"

    def test_batch_statistics(self):
        selector = MatchSelector()
        results = selector.find_best_matches_batch([self.john, self.mary], self.candidates)
        stats = selector.get_selection_statistics(results)

        assert stats["total_results"] == 2
        assert stats["total_selected"] == sum(len(r.all_matches()) for r in results)
        assert stats["total_comparisons"] == 6

    def test_master_list_owner_never_selected_for_individuals(self):
        town = classify("TOWN OF NEW SHOREHAM", {"email": "shared@example.com"}, location_identifier="900")
        john = make_person("JOHN", "SMITH", "901", source="BLOOMERANG_CSV", email="shared@example.com")

        result = MatchSelector().find_best_matches(town, {EntityType.INDIVIDUAL: [john]})

        assert result.matches_by_type[EntityType.INDIVIDUAL].matches == []
        assert result.all_matches() == []

    def test_batch_releases_scorer_cache(self):
        selector = MatchSelector()
        selector.find_best_matches_batch([self.john, self.mary], self.candidates)
        assert selector.scorer._personal_cache == {}

    def test_collect_scores_by_type_pair(self):
        result = find_best_matches(self.john, self.candidates)
        scores = collect_scores([result])

        assert len(scores["Individual-to-Individual"]) == 2
        assert len(scores["Individual-to-Business"]) == 1
        assert "Individual-to-AggregateHousehold" not in scores


if __name__ == "__main__":
    pytest.main([__file__])
