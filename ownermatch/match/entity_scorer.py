"""
Cross-type entity comparison for best-match selection.

Scores any pair of entities. Individuals and households are also scored
through household members, each member compared with its own data, and
the higher score wins. Owner names carrying business qualifiers are
compared by their personal part; names that are business-only are kept
out of personal matching altogether.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..classify.business_filter import BusinessEntityFilter
from ..compare.base import ComparisonDetail, compare_values, weighted_similarity
from ..compare.similarity import normalize_key, token_set_similarity
from ..entities.entity import Entity, EntityType, Household, entity_weights

logger = logging.getLogger(__name__)

PERSONAL_TYPES = (EntityType.INDIVIDUAL, EntityType.HOUSEHOLD)


@dataclass
class EntityComparison:
    """
    Score of one base/candidate pair.

    Attributes:
        score: Overall similarity in [0, 1]
        name_score: Similarity of the name component alone
        components: Per-component breakdown
        matched_member: Household member that produced the score, if any
        comparison_type: Type pair label, e.g. ``Individual-to-AggregateHousehold``
    """

    score: float
    name_score: float = 0.0
    components: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    matched_member: Optional[Entity] = None
    comparison_type: str = ""


class EntityScorer:
    """
    Scores entity pairs across types.

    Args:
        config: ``classification`` configuration section for the business filter
        business_filter: Pre-built filter (built from ``config`` when omitted)
    """

    def __init__(self, config: Optional[Dict] = None,
                 business_filter: Optional[BusinessEntityFilter] = None):
        self.config = config or {}
        self.business_filter = business_filter or BusinessEntityFilter(self.config)
        self._personal_cache: Dict[int, Dict[str, Any]] = {}

        logger.info("Initialized EntityScorer")

    def _personal_info(self, entity: Entity) -> Dict[str, Any]:
        cached = self._personal_cache.get(id(entity))
        if cached is not None and cached["entity"] is entity:
            return cached

        raw = entity.raw_name or entity.display_name
        result = self.business_filter.classify_and_clean_name(raw)
        cleaned = None
        if not result["should_exclude_from_matching"]:
            cleaned = normalize_key(result["cleaned_name"])
            if cleaned == normalize_key(raw):
                cleaned = None

        info = {
            "entity": entity,
            "excluded": result["should_exclude_from_matching"],
            "cleaned": cleaned
        }
        self._personal_cache[id(entity)] = info
        return info

    def is_excluded(self, entity: Entity) -> bool:
        """
        Whether an entity's name keeps it out of personal matching.

        Personal entities are excluded when their name is institutional or
        nothing personal is left after stripping business terms. Business
        and LegalConstruct entities are excluded when their name is on the
        complete exclusion list.
        """
        if entity.entity_type in PERSONAL_TYPES:
            return self._personal_info(entity)["excluded"]
        return self.business_filter.is_complete_business_entity(
            normalize_key(entity.raw_name or entity.display_name))

    def can_compare(self, base: Entity, candidate: Entity) -> bool:
        """
        Excluded names are never scored against Individual or Household entities.
        """
        if base.entity_type in PERSONAL_TYPES and self.is_excluded(candidate):
            return False
        if candidate.entity_type in PERSONAL_TYPES and self.is_excluded(base):
            return False
        return True

    def compare(self, base: Entity, candidate: Entity) -> Optional[EntityComparison]:
        """
        Score a candidate against a base entity.

        Returns:
            EntityComparison, or None when the pair is not comparable
        """
        if not self.can_compare(base, candidate):
            return None

        label = f"{base.entity_type.value}-to-{candidate.entity_type.value}"
        types = (base.entity_type, candidate.entity_type)

        if types == (EntityType.INDIVIDUAL, EntityType.HOUSEHOLD):
            result = self._compare_with_household(base, candidate)
        elif types == (EntityType.HOUSEHOLD, EntityType.INDIVIDUAL):
            result = self._compare_with_household(candidate, base)
        elif types == (EntityType.HOUSEHOLD, EntityType.HOUSEHOLD):
            result = self._compare_households(base, candidate)
        else:
            result = self._direct(base, candidate)

        result.comparison_type = label
        return result

    def _direct(self, a: Entity, b: Entity) -> EntityComparison:
        weights = entity_weights(a.entity_type, b.entity_type)
        filtered = a.entity_type in PERSONAL_TYPES or b.entity_type in PERSONAL_TYPES

        def scorer(name: str, mine: Any, theirs: Any) -> float:
            if name == "name" and filtered:
                return self._filtered_name_score(a, b, mine, theirs)
            return compare_values(mine, theirs)

        detail = weighted_similarity(a, b, weights, scorer)
        return _from_detail(detail)

    def _filtered_name_score(self, a: Entity, b: Entity, mine: Any, theirs: Any) -> float:
        cleaned_a = self._personal_info(a)["cleaned"]
        cleaned_b = self._personal_info(b)["cleaned"]
        if cleaned_a is None and cleaned_b is None:
            return compare_values(mine, theirs)
        return token_set_similarity(cleaned_a or a.display_name, cleaned_b or b.display_name)

    def _compare_with_household(self, individual: Entity, household: Household) -> EntityComparison:
        best = self._direct(individual, household)

        for member in household.members:
            if self.is_excluded(member):
                continue
            result = self._direct(individual, member)
            if result.score > best.score:
                best = result
                best.matched_member = member

        return best

    def _compare_households(self, a: Household, b: Household) -> EntityComparison:
        best = self._direct(a, b)

        for member_a in a.members:
            for member_b in b.members:
                if self.is_excluded(member_a) or self.is_excluded(member_b):
                    continue
                result = self._direct(member_a, member_b)
                if result.score > best.score:
                    best = result
                    best.matched_member = member_b

        return best

    def clear_cache(self):
        self._personal_cache.clear()


def _from_detail(detail: ComparisonDetail) -> EntityComparison:
    name_score = detail.component_similarity("name") or 0.0
    return EntityComparison(detail.overall_similarity, name_score, detail.components)


def compare_entities(base: Entity, candidates: List[Entity],
                     config: Optional[Dict] = None) -> List[Optional[EntityComparison]]:
    """
    Convenience function to score a list of candidates against one entity.

    Args:
        base: Base entity
        candidates: Entities to score
        config: ``classification`` configuration section

    Returns:
        One EntityComparison (or None when not comparable) per candidate
    """
    scorer = EntityScorer(config)
    return [scorer.compare(base, candidate) for candidate in candidates]
