"""
Threshold calibration for best-match selection.

Looks at the score distribution of each comparison type for natural gaps
and recommends a minimum score (below which nothing matches) and a
high-confidence score (above which a match is very likely). Manually
validated samples refine both values.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

PERFECT_MATCH_SCORE = 0.99
HIGH_SCORE = 0.80
DEFAULT_OVERALL_MINIMUM = 0.1
DEFAULT_OVERALL_HIGH_CONFIDENCE = 0.9

TRUE_LABELS = {"true", "yes", "1", "y", "t"}
FALSE_LABELS = {"false", "no", "0", "n", "f"}


def calculate_statistics(scores: Iterable[float]) -> Dict[str, float]:
    """
    Summary statistics of a score list.

    Percentiles are taken as ``sorted[floor(n * q)]`` and the standard
    deviation is the population one.
    """
    values = np.sort(np.asarray(list(scores), dtype=float))
    n = len(values)
    if n == 0:
        return {key: 0.0 for key in ("count", "mean", "median", "std", "min", "max",
                                     "p25", "p75", "p90", "p95", "p99")}

    def at(q: float) -> float:
        return float(values[min(n - 1, int(np.floor(n * q)))])

    return {
        "count": n,
        "mean": float(values.mean()),
        "median": at(0.5),
        "std": float(values.std()),
        "min": float(values[0]),
        "max": float(values[-1]),
        "p25": at(0.25),
        "p75": at(0.75),
        "p90": at(0.90),
        "p95": at(0.95),
        "p99": at(0.99)
    }


def score_distribution(scores: Iterable[float]) -> Dict[str, int]:
    """Count of scores per 10% bucket."""
    values = np.asarray(list(scores), dtype=float)
    buckets = {}
    for i in range(11):
        lower = i / 10
        upper = (i + 1) / 10
        buckets[f"{i * 10}-{(i + 1) * 10}%"] = int(((values >= lower) & (values < upper)).sum())
    return buckets


class ThresholdCalibrator:
    """
    Recommends selection thresholds from observed score distributions.

    Args:
        config: ``calibration`` configuration section
    """

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}
        self.minimum_corpus_size = self.config.get("minimum_corpus_size", 10)
        self.gap_multiplier = self.config.get("gap_multiplier", 5.0)
        self.minimum_gap = self.config.get("minimum_gap", 0.02)
        self.lower_gap_minimum = self.config.get("lower_gap_minimum", 0.05)
        self.upper_gap_minimum = self.config.get("upper_gap_minimum", 0.03)

        logger.info("Initialized ThresholdCalibrator")

    def find_significant_gaps(self, scores: Iterable[float]) -> List[Dict[str, float]]:
        """
        Find unusually large gaps between consecutive sorted scores.

        A gap is significant when it exceeds both ``gap_multiplier`` times
        the average gap, ``(max - min) / n``, and ``minimum_gap``.

        Args:
            scores: Comparison scores

        Returns:
            Gaps sorted by size, largest first; empty below the minimum corpus size
        """
        values = np.sort(np.asarray(list(scores), dtype=float))
        n = len(values)
        if n < self.minimum_corpus_size:
            return []

        average_gap = (values[-1] - values[0]) / n
        differences = np.diff(values)

        gaps = []
        for i in np.nonzero((differences > average_gap * self.gap_multiplier) &
                            (differences > self.minimum_gap))[0]:
            gaps.append({
                "lower_bound": float(values[i]),
                "upper_bound": float(values[i + 1]),
                "gap_size": float(differences[i]),
                "percentile_location": float((i + 1) / n * 100)
            })

        return sorted(gaps, key=lambda g: g["gap_size"], reverse=True)

    def analyze(self, scores: Iterable[float]) -> Dict[str, Any]:
        """Statistics, distribution, gaps and high-score counts of one score set."""
        values = list(scores)
        if not values:
            return {"no_data": True}

        array = np.asarray(values, dtype=float)
        return {
            "no_data": False,
            "count": len(values),
            "statistics": calculate_statistics(values),
            "distribution": score_distribution(values),
            "gaps": self.find_significant_gaps(values),
            "high_score_count": int((array >= HIGH_SCORE).sum()),
            "perfect_match_count": int((array >= PERFECT_MATCH_SCORE).sum())
        }

    def recommend(self, scores: Iterable[float]) -> Dict[str, Any]:
        """
        Recommend a minimum and a high-confidence score for one comparison type.

        Returns:
            Dictionary with minimum_score, high_confidence_score, their
            rationales and the supporting statistics; ``no_data`` when empty
        """
        analysis = self.analyze(scores)
        if analysis["no_data"]:
            return {"no_data": True}

        stats = analysis["statistics"]
        gaps = analysis["gaps"]

        lower_gap = next((g for g in gaps if g["lower_bound"] < stats["median"]
                          and g["gap_size"] > self.lower_gap_minimum), None)
        if lower_gap:
            minimum_score = lower_gap["upper_bound"]
            minimum_rationale = (f"Natural gap at {lower_gap['lower_bound']:.3f}-"
                                 f"{lower_gap['upper_bound']:.3f}")
        else:
            minimum_score = max(0.1, stats["mean"] - 2 * stats["std"])
            minimum_rationale = f"Statistical: mean - 2*std = {minimum_score:.4f}"

        upper_gap = next((g for g in gaps if g["lower_bound"] > stats["p75"]
                          and g["gap_size"] > self.upper_gap_minimum), None)
        if upper_gap:
            high_confidence = upper_gap["upper_bound"]
            high_rationale = (f"Natural gap at {upper_gap['lower_bound']:.3f}-"
                              f"{upper_gap['upper_bound']:.3f}")
        elif stats["max"] >= 0.95 and analysis["perfect_match_count"] > 0:
            high_confidence = max(0.90, stats["p95"])
            high_rationale = f"High threshold based on {analysis['perfect_match_count']} perfect matches"
        else:
            high_confidence = stats["p90"]
            high_rationale = f"90th percentile = {high_confidence:.4f}"

        return {
            "no_data": False,
            "minimum_score": round(minimum_score, 4),
            "minimum_score_rationale": minimum_rationale,
            "high_confidence_score": round(high_confidence, 4),
            "high_confidence_rationale": high_rationale,
            "statistics": stats,
            "gaps": gaps
        }

    def recommend_thresholds(self, scores_by_type: Dict[str, Iterable[float]]) -> Dict[str, Any]:
        """
        Recommend thresholds for every comparison type plus overall values.

        The overall minimum is the lowest per-type minimum and the overall
        high-confidence score the highest per-type one.

        Args:
            scores_by_type: Scores keyed by comparison type label

        Returns:
            Dictionary with by_type recommendations, overall_minimum and
            overall_high_confidence
        """
        by_type = {label: self.recommend(scores) for label, scores in scores_by_type.items()}
        usable = [r for r in by_type.values() if not r["no_data"]]

        overall_minimum = (min(r["minimum_score"] for r in usable)
                           if usable else DEFAULT_OVERALL_MINIMUM)
        overall_high = (max(r["high_confidence_score"] for r in usable)
                        if usable else DEFAULT_OVERALL_HIGH_CONFIDENCE)

        logger.info(f"Recommended thresholds over {len(usable)} comparison types: "
                    f"minimum={overall_minimum:.4f}, high_confidence={overall_high:.4f}")

        return {
            "by_type": by_type,
            "overall_minimum": overall_minimum,
            "overall_high_confidence": overall_high
        }

    def refine_from_validation(self, validation_df: pd.DataFrame,
                               score_column: str = "score",
                               label_column: str = "is_actual_match") -> Dict[str, Any]:
        """
        Refine thresholds from manually validated matches.

        The refined minimum is the highest false-match score and the refined
        high-confidence score the lowest true-match score. When they overlap
        there is no clean threshold and the result is flagged ambiguous.

        Args:
            validation_df: Validated samples with a score and a true/false label
            score_column: Score column name
            label_column: Label column name (bools or true/false strings)

        Returns:
            Dictionary with refined_minimum, refined_high_confidence,
            ambiguous and per-class statistics

        Raises:
            ValueError: Missing columns, or no true or no false samples
        """
        missing = [c for c in (score_column, label_column) if c not in validation_df.columns]
        if missing:
            raise ValueError(f"Validation data missing required columns: {missing}")

        labels = validation_df[label_column].map(_parse_label)
        scores = pd.to_numeric(validation_df[score_column], errors="coerce")

        true_scores = scores[labels.map(lambda v: v is True) & scores.notna()].values
        false_scores = scores[labels.map(lambda v: v is False) & scores.notna()].values

        if len(true_scores) == 0 or len(false_scores) == 0:
            raise ValueError("Validation data needs both true and false matches")

        refined_minimum = float(np.max(false_scores))
        refined_high = float(np.min(true_scores))
        ambiguous = refined_minimum >= refined_high

        if ambiguous:
            logger.warning(f"Validated scores overlap: false matches reach {refined_minimum:.4f}, "
                           f"true matches start at {refined_high:.4f}")

        logger.info(f"Refined thresholds from {len(true_scores)} true and {len(false_scores)} "
                    f"false matches: minimum={refined_minimum:.4f}, high_confidence={refined_high:.4f}")

        return {
            "refined_minimum": refined_minimum,
            "refined_high_confidence": refined_high,
            "ambiguous": ambiguous,
            "true_match_statistics": calculate_statistics(true_scores),
            "false_match_statistics": calculate_statistics(false_scores)
        }

    def component_correlations(self, comparisons_df: pd.DataFrame) -> Dict[str, Any]:
        """
        Correlation of the name and contact-info component scores with the overall score.

        Args:
            comparisons_df: Columns score, name_score and contact_info_score
        """
        needed = ["score", "name_score", "contact_info_score"]
        if any(c not in comparisons_df.columns for c in needed):
            return {"no_data": True}

        df = comparisons_df[needed].dropna()
        if len(df) < 2:
            return {"no_data": True}

        return {
            "no_data": False,
            "sample_size": len(df),
            "name_correlation": _correlation(df["score"].values, df["name_score"].values),
            "contact_correlation": _correlation(df["score"].values, df["contact_info_score"].values)
        }


def _correlation(x: np.ndarray, y: np.ndarray) -> float:
    if np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])


def _parse_label(value: Any) -> Optional[bool]:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip().lower()
    if text in TRUE_LABELS:
        return True
    if text in FALSE_LABELS:
        return False
    return None


def collect_scores(results: Iterable[Any]) -> Dict[str, List[float]]:
    """
    Gather every scored comparison from match results, keyed by type pair.

    Args:
        results: MatchResult objects

    Returns:
        Scores keyed by labels like ``Individual-to-Business``
    """
    scores_by_type: Dict[str, List[float]] = {}
    for result in results:
        base_type = result.base_entity.entity_type.value
        for entity_type, type_matches in result.matches_by_type.items():
            if not type_matches.scores:
                continue
            label = f"{base_type}-to-{entity_type.value}"
            scores_by_type.setdefault(label, []).extend(type_matches.scores)
    return scores_by_type


def recommend_thresholds(scores_by_type: Dict[str, Iterable[float]],
                         config: Optional[Dict] = None) -> Dict[str, Any]:
    """
    Convenience function to recommend thresholds.

    Args:
        scores_by_type: Scores keyed by comparison type label
        config: ``calibration`` configuration section

    Returns:
        Recommendations per type and overall
    """
    calibrator = ThresholdCalibrator(config)
    return calibrator.recommend_thresholds(scores_by_type)
