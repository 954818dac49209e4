"""
Unit tests for threshold calibration.
"""

import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from ownermatch.match.calibration import (
    DEFAULT_OVERALL_HIGH_CONFIDENCE, DEFAULT_OVERALL_MINIMUM, ThresholdCalibrator,
    calculate_statistics, recommend_thresholds, score_distribution
)


GAPPED_SCORES = [0.1, 0.11, 0.12, 0.13, 0.14, 0.8, 0.81, 0.82, 0.83, 0.84]


class TestStatistics:
    """Test cases for score statistics helpers."""

    def test_population_standard_deviation(self):
        stats = calculate_statistics([1.0, 2.0, 3.0, 4.0])
        assert stats["count"] == 4
        assert stats["mean"] == pytest.approx(2.5)
        assert stats["std"] == pytest.approx(1.118034, rel=1e-5)
        assert stats["median"] == 3.0
        assert stats["p25"] == 2.0
        assert stats["min"] == 1.0
        assert stats["max"] == 4.0

    def test_empty_statistics(self):
        stats = calculate_statistics([])
        assert stats["count"] == 0.0
        assert stats["mean"] == 0.0

    def test_distribution_buckets(self):
        buckets = score_distribution([0.05, 0.15, 0.95, 1.0])
        assert buckets["0-10%"] == 1
        assert buckets["10-20%"] == 1
        assert buckets["90-100%"] == 1
        assert buckets["100-110%"] == 1


class TestThresholdCalibrator:
    """Test cases for gap detection and threshold recommendation."""

    def setup_method(self):
        self.calibrator = ThresholdCalibrator()

    def test_significant_gap(self):
        gaps = self.calibrator.find_significant_gaps(GAPPED_SCORES)

        assert len(gaps) == 1
        assert gaps[0]["lower_bound"] == 0.14
        assert gaps[0]["upper_bound"] == 0.8
        assert gaps[0]["gap_size"] == pytest.approx(0.66)
        assert gaps[0]["percentile_location"] == pytest.approx(50.0)

    def test_small_corpus_has_no_gaps(self):
        assert self.calibrator.find_significant_gaps(GAPPED_SCORES[1:]) == []

    def test_recommendation_from_gap(self):
        recommendation = self.calibrator.recommend(GAPPED_SCORES)

        assert not recommendation["no_data"]
        assert recommendation["minimum_score"] == pytest.approx(0.8)
        assert recommendation["high_confidence_score"] == pytest.approx(0.84)
        assert recommendation["minimum_score_rationale"].startswith("Natural gap")

    def test_statistical_minimum_without_gap(self):
        scores = [0.5, 0.52, 0.54, 0.56, 0.58, 0.6]
        recommendation = self.calibrator.recommend(scores)

        assert recommendation["minimum_score_rationale"].startswith("Statistical")
        assert recommendation["minimum_score"] >= 0.1

    def test_perfect_matches_raise_high_confidence(self):
        scores = [0.2, 0.25, 0.3, 0.35, 0.4, 0.45, 0.5, 0.55, 0.96, 1.0]
        recommendation = self.calibrator.recommend(scores)
        assert recommendation["high_confidence_score"] >= 0.9

    def test_empty_type(self):
        assert self.calibrator.recommend([]) == {"no_data": True}

    def test_overall_defaults_without_data(self):
        result = recommend_thresholds({"Individual-to-Business": []})

        assert result["overall_minimum"] == DEFAULT_OVERALL_MINIMUM
        assert result["overall_high_confidence"] == DEFAULT_OVERALL_HIGH_CONFIDENCE
        assert result["by_type"]["Individual-to-Business"]["no_data"]

    def test_overall_spans_types(self):
        result = self.calibrator.recommend_thresholds({
            "Individual-to-Individual": GAPPED_SCORES,
            "Individual-to-Business": [0.5, 0.52, 0.54, 0.56, 0.58, 0.6]
        })
        by_type = result["by_type"]

        assert result["overall_minimum"] == min(r["minimum_score"] for r in by_type.values())
        assert result["overall_high_confidence"] == max(r["high_confidence_score"] for r in by_type.values())


class TestValidationRefinement:
    """Test cases for refinement from validated samples."""

    def setup_method(self):
        self.calibrator = ThresholdCalibrator()

    def test_clean_separation(self):
        df = pd.DataFrame({
            "score": [0.9, 0.95, 0.4, 0.3],
            "is_actual_match": [True, "yes", False, "no"]
        })
        result = self.calibrator.refine_from_validation(df)

        assert result["refined_minimum"] == 0.4
        assert result["refined_high_confidence"] == 0.9
        assert not result["ambiguous"]
        assert result["true_match_statistics"]["count"] == 2

    def test_overlap_is_ambiguous(self):
        df = pd.DataFrame({
            "score": [0.5, 0.9, 0.6, 0.2],
            "is_actual_match": ["true", "true", "false", "false"]
        })
        result = self.calibrator.refine_from_validation(df)

        assert result["ambiguous"]
        assert result["refined_minimum"] == 0.6
        assert result["refined_high_confidence"] == 0.5

    def test_missing_class_rejected(self):
        df = pd.DataFrame({"score": [0.9, 0.8], "is_actual_match": [True, True]})
        with pytest.raises(ValueError):
            self.calibrator.refine_from_validation(df)

    def test_missing_column_rejected(self):
        df = pd.DataFrame({"score": [0.9, 0.2]})
        with pytest.raises(ValueError):
            self.calibrator.refine_from_validation(df)

    def test_custom_columns(self):
        df = pd.DataFrame({"similarity": [0.9, 0.1], "label": [1, 0]})
        result = self.calibrator.refine_from_validation(df, score_column="similarity", label_column="label")
        assert result["refined_minimum"] == 0.1

    def test_component_correlations(self):
        df = pd.DataFrame({
            "score": [0.2, 0.5, 0.9],
            "name_score": [0.1, 0.5, 1.0],
            "contact_info_score": [0.3, 0.3, 0.3]
        })
        result = self.calibrator.component_correlations(df)

        assert result["name_correlation"] > 0.9
        assert result["contact_correlation"] == 0.0
        assert self.calibrator.component_correlations(df[["score"]]) == {"no_data": True}


if __name__ == "__main__":
    pytest.main([__file__])
