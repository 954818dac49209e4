"""
Best-match selection for OwnerMatch.

Scores a base entity against every candidate, groups the scores by
candidate entity type and keeps, per type, the larger of the scores at or
above the configured percentile and the top N, subject to per-type-pair
cutoffs and floors. Candidates with a near-perfect name score are added
back when they clear the floor.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from ..entities.entity import Entity, EntityType
from .entity_scorer import EntityScorer

logger = logging.getLogger(__name__)

DEFAULT_PAIR_MINIMUMS = {
    "individual:individual": 0.50,
    "individual:household": 0.50,
    "household:individual": 0.50
}

DEFAULT_PAIR_CUTOFFS = {
    "individual:individual": 0.75
}

METHOD_PERCENTILE = "percentile"
METHOD_TOP_N = "top_n"
METHOD_PAIR_CUTOFF = "type_pair_cutoff"
METHOD_NONE = "no_candidates"

RESULT_COLUMNS = [
    "base_key", "base_name", "base_type", "candidate_key", "candidate_name",
    "candidate_type", "rank", "score", "name_score", "matched_member",
    "name_override", "percentile_value", "effective_cutoff", "selection_method"
]


def type_pair_key(base_type: EntityType, candidate_type: EntityType) -> str:
    """Config key for a type pair, e.g. ``individual:household``."""
    return f"{base_type.name.lower()}:{candidate_type.name.lower()}"


@dataclass
class CandidateMatch:
    entity: Entity
    score: float
    name_score: float = 0.0
    components: Optional[Dict[str, Any]] = None
    matched_member: Optional[Entity] = None
    name_override: bool = False


@dataclass
class TypeMatches:
    """
    Selected matches of one candidate entity type.

    Attributes:
        entity_type: Candidate entity type
        matches: Selected matches ranked by score
        percentile_value: Score at the percentile index, None with no candidates
        effective_cutoff: Cutoff actually applied before the floor
        selection_method: How the primary set was chosen
        total: Number of candidates scored
        scores: Every score of the type, descending
    """

    entity_type: EntityType
    matches: List[CandidateMatch] = field(default_factory=list)
    percentile_value: Optional[float] = None
    effective_cutoff: Optional[float] = None
    selection_method: str = METHOD_NONE
    total: int = 0
    scores: List[float] = field(default_factory=list)


@dataclass
class MatchResult:
    base_entity: Entity
    matches_by_type: Dict[EntityType, TypeMatches]
    comparison_count: int
    config: Dict[str, Any]

    def all_matches(self) -> List[CandidateMatch]:
        """Selected matches of every type, highest score first."""
        matches = [m for t in self.matches_by_type.values() for m in t.matches]
        return sorted(matches, key=lambda m: m.score, reverse=True)

    def best_match(self) -> Optional[CandidateMatch]:
        matches = self.all_matches()
        return matches[0] if matches else None

    def to_frame(self) -> pd.DataFrame:
        """One row per selected match."""
        base = self.base_entity
        rows = []
        for entity_type, type_matches in self.matches_by_type.items():
            for rank, match in enumerate(type_matches.matches, start=1):
                rows.append({
                    "base_key": _key_text(base),
                    "base_name": base.display_name,
                    "base_type": base.entity_type.value,
                    "candidate_key": _key_text(match.entity),
                    "candidate_name": match.entity.display_name,
                    "candidate_type": entity_type.value,
                    "rank": rank,
                    "score": match.score,
                    "name_score": match.name_score,
                    "matched_member": match.matched_member.display_name if match.matched_member else None,
                    "name_override": match.name_override,
                    "percentile_value": type_matches.percentile_value,
                    "effective_cutoff": type_matches.effective_cutoff,
                    "selection_method": type_matches.selection_method
                })
        return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def _key_text(entity: Entity) -> str:
    source, identifier = entity.key
    return f"{source}:{identifier}"


class MatchSelector:
    """
    Percentile-based best-match selector.

    Args:
        config: ``matching`` configuration section
        scorer: Entity scorer (built with default filter settings when omitted)
    """

    def __init__(self, config: Optional[Dict] = None, scorer: Optional[EntityScorer] = None):
        self.config = dict(config or {})
        self.percentile_threshold = self.config.get("percentile_threshold", 98)
        self.minimum_group_size = self.config.get("minimum_group_size", 10)
        self.global_minimum_score = self.config.get("global_minimum_score", 0.31)
        self.name_score_override = self.config.get("name_score_override", 0.985)
        self.pair_minimums = dict(self.config.get("per_type_pair_minimums", DEFAULT_PAIR_MINIMUMS))
        self.pair_cutoffs = dict(self.config.get("per_type_pair_cutoffs", DEFAULT_PAIR_CUTOFFS))
        self.include_components = self.config.get("include_components", True)
        self.scorer = scorer or EntityScorer()

        logger.info(f"Initialized MatchSelector with percentile {self.percentile_threshold} "
                    f"and minimum group size {self.minimum_group_size}")

    def minimum_score(self, base_type: EntityType, candidate_type: EntityType) -> float:
        """Floor for a type pair: the larger of the global and per-pair minimums."""
        pair_minimum = self.pair_minimums.get(type_pair_key(base_type, candidate_type), 0.0)
        return max(self.global_minimum_score, pair_minimum)

    def percentile_value(self, ranked_scores: List[float]) -> float:
        """
        Score at index ``floor(n * (1 - p / 100))`` of the descending list.

        Returns 0 when the index falls past the end of the list.
        """
        n = len(ranked_scores)
        index = int(math.floor(n * (1 - self.percentile_threshold / 100.0)))
        if index < 0 or index >= n:
            return 0.0
        return ranked_scores[index]

    def select(self, base_type: EntityType, candidate_type: EntityType,
               candidates: List[CandidateMatch]) -> TypeMatches:
        """
        Choose the best matches of one candidate type.

        Args:
            base_type: Type of the base entity
            candidate_type: Type shared by all candidates
            candidates: Scored candidates in any order

        Returns:
            TypeMatches with the selected candidates ranked by score
        """
        ranked = sorted(candidates, key=lambda m: m.score, reverse=True)
        if not ranked:
            return TypeMatches(candidate_type)

        scores = [m.score for m in ranked]
        percentile_value = self.percentile_value(scores)
        floor = self.minimum_score(base_type, candidate_type)
        cutoff = self.pair_cutoffs.get(type_pair_key(base_type, candidate_type))

        if cutoff is not None:
            effective_cutoff = max(percentile_value, cutoff)
            primary = [m for m in ranked if m.score >= effective_cutoff]
            method = METHOD_PERCENTILE if percentile_value >= cutoff else METHOD_PAIR_CUTOFF
        else:
            effective_cutoff = percentile_value
            above = [m for m in ranked if m.score >= percentile_value]
            if len(above) >= self.minimum_group_size:
                primary = above
                method = METHOD_PERCENTILE
            else:
                primary = ranked[:self.minimum_group_size]
                method = METHOD_TOP_N

        selected = [m for m in primary if m.score >= floor]
        chosen = {id(m) for m in selected}

        overrides = [
            m for m in ranked
            if id(m) not in chosen and m.name_score > self.name_score_override and m.score >= floor
        ]
        for match in overrides:
            match.name_override = True

        if overrides:
            method = f"{method}+{len(overrides)}_name_override"
            selected = sorted(selected + overrides, key=lambda m: m.score, reverse=True)

        return TypeMatches(
            entity_type=candidate_type,
            matches=selected,
            percentile_value=percentile_value,
            effective_cutoff=effective_cutoff,
            selection_method=method,
            total=len(ranked),
            scores=scores
        )

    def _is_self(self, base: Entity, candidate: Entity) -> bool:
        if candidate is base:
            return True
        return bool(base.key[1]) and candidate.key == base.key and candidate.entity_type == base.entity_type

    def find_best_matches(self, base: Entity,
                          candidates_by_type: Dict[Any, Iterable[Entity]]) -> MatchResult:
        """
        Find the best matches for one base entity.

        Args:
            base: Entity to match
            candidates_by_type: Candidate entities grouped by entity type

        Returns:
            MatchResult with one TypeMatches per candidate type
        """
        grouped: Dict[EntityType, List[CandidateMatch]] = {t: [] for t in EntityType}
        comparison_count = 0
        skipped = 0

        for _, candidates in candidates_by_type.items():
            for candidate in candidates:
                if self._is_self(base, candidate):
                    continue

                comparison = self.scorer.compare(base, candidate)
                if comparison is None:
                    skipped += 1
                    continue

                comparison_count += 1
                grouped[candidate.entity_type].append(CandidateMatch(
                    entity=candidate,
                    score=comparison.score,
                    name_score=comparison.name_score,
                    components=comparison.components if self.include_components else None,
                    matched_member=comparison.matched_member
                ))

        matches_by_type = {
            entity_type: self.select(base.entity_type, entity_type, scored)
            for entity_type, scored in grouped.items()
        }

        selected = sum(len(t.matches) for t in matches_by_type.values())
        logger.debug(f"{base!r}: {comparison_count} comparisons, {selected} selected, "
                     f"{skipped} excluded pairs")

        return MatchResult(base, matches_by_type, comparison_count, self.config)

    def find_best_matches_batch(self, bases: Iterable[Entity],
                                candidates_by_type: Dict[Any, Iterable[Entity]]) -> List[MatchResult]:
        candidates_by_type = {k: list(v) for k, v in candidates_by_type.items()}
        try:
            results = [self.find_best_matches(base, candidates_by_type) for base in bases]
        finally:
            self.scorer.clear_cache()
        logger.info(f"Found best matches for {len(results)} base entities")
        return results

    def get_selection_statistics(self, results: List[MatchResult]) -> Dict[str, Any]:
        """
        Summary statistics over a batch of match results.

        Args:
            results: Results from ``find_best_matches``

        Returns:
            Dictionary with selected-score statistics and per-type counts
        """
        rows = [
            {"entity_type": t.value, "score": m.score, "name_override": m.name_override,
             "selection_method": tm.selection_method}
            for r in results for t, tm in r.matches_by_type.items() for m in tm.matches
        ]
        if not rows:
            return {"total_results": len(results), "total_selected": 0}

        df = pd.DataFrame(rows)
        scores = df["score"]

        score_stats = {
            "mean_score": scores.mean(),
            "median_score": scores.median(),
            "std_score": scores.std(),
            "min_score": scores.min(),
            "max_score": scores.max()
        }

        return {
            "total_results": len(results),
            "total_selected": len(df),
            "total_comparisons": sum(r.comparison_count for r in results),
            "score_statistics": score_stats,
            "selected_by_type": df["entity_type"].value_counts().to_dict(),
            "name_overrides": int(df["name_override"].sum()),
            "results_without_matches": sum(1 for r in results if not r.all_matches())
        }

    def update_config(self, overrides: Dict[str, Any]):
        """Apply matching setting overrides in place."""
        self.config.update(overrides)
        self.percentile_threshold = self.config.get("percentile_threshold", self.percentile_threshold)
        self.minimum_group_size = self.config.get("minimum_group_size", self.minimum_group_size)
        self.global_minimum_score = self.config.get("global_minimum_score", self.global_minimum_score)
        self.name_score_override = self.config.get("name_score_override", self.name_score_override)
        self.pair_minimums = dict(self.config.get("per_type_pair_minimums", self.pair_minimums))
        self.pair_cutoffs = dict(self.config.get("per_type_pair_cutoffs", self.pair_cutoffs))
        logger.info(f"Updated matching settings: {overrides}")


def find_best_matches(base_entity: Entity, candidate_entities_by_type: Dict[Any, Iterable[Entity]],
                      config: Optional[Dict] = None) -> MatchResult:
    """
    Convenience function to find best matches for one entity.

    Args:
        base_entity: Entity to match
        candidate_entities_by_type: Candidate entities grouped by entity type
        config: ``matching`` configuration section (defaults when omitted)

    Returns:
        MatchResult
    """
    selector = MatchSelector(config)
    return selector.find_best_matches(base_entity, candidate_entities_by_type)
