"""
Integration tests for the complete OwnerMatch reconciliation pipeline.
"""

import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from ownermatch.classify.classifier import FAILURE_COLUMNS
from ownermatch.compare.base import BLOOMERANG_CSV, VISION_APPRAISAL
from ownermatch.compare.similarity import DEFAULT_NAME_WEIGHTS
from ownermatch.entities.entity import EntityType
from ownermatch.errors import ConfigurationError
from ownermatch.match.selector import RESULT_COLUMNS
from ownermatch.pipeline.reconcile import ReconciliationPipeline, reconcile


STREET_NAMES = ["CORN NECK RD", "CORN NECK ROAD", "BEACH AVE", "OLD TOWN RD", "SPRING ST"]


class TestReconciliationPipeline:
    """Integration tests for the complete pipeline."""

    def setup_method(self):
        self.candidate_df = pd.DataFrame({
            "location_identifier": ["101", "102", "103"],
            "raw_name": ["SMITH, JOHN", "HARBOR POND LLC", "JONES, PETER & ANNE"],
            "property_location": ["12 CORN NECK RD", "7 MOHEGAN TRAIL", "3 SPRING ST"],
            "primary_address": [None, "PO BOX 55, BLOCK ISLAND, RI 02807", "45 MAIN ST, PROVIDENCE, RI 02903"]
        })

        self.base_df = pd.DataFrame({
            "account_number": [5001, 5002],
            "raw_name": ["JOHN SMITH", "SMITH JOHN,"],
            "primary_address": ["12 CORN NECK ROAD, BLOCK ISLAND, RI 02807", "1 OLD TOWN RD"],
            "email": ["jsmith@example.com", None]
        })

        self.pipeline = ReconciliationPipeline()

    def test_pipeline_initialization(self):
        assert self.pipeline.config["matching"]["percentile_threshold"] == 98
        assert self.pipeline.street_database is None
        assert self.pipeline.selector.scorer is self.pipeline.scorer

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            ReconciliationPipeline(config={"matching": {"percentile_threshold": 150}})

    def test_invalid_name_weights_rejected(self):
        with pytest.raises(ConfigurationError):
            ReconciliationPipeline(config={"comparison": {"name_similarity_weights": {"soundex": 0.5}}})

    def test_name_weights_stay_with_their_pipeline(self):
        smith = self.pipeline.classifier.classify("JOHN SMITH")
        smyth = self.pipeline.classifier.classify("JOHN SMYTH")
        before = smith.name.compare_to(smyth.name)

        edit_only = ReconciliationPipeline(config={"comparison": {"name_similarity_weights": {
            "levenshtein": 1.0, "jaro_winkler": 0.0, "metaphone": 0.0
        }}})
        other_smith = edit_only.classifier.classify("JOHN SMITH")
        other_smyth = edit_only.classifier.classify("JOHN SMYTH")

        assert other_smith.name.compare_to(other_smyth.name) == pytest.approx((0.5 * 0.8 + 0.4) / 0.9)
        assert smith.name.compare_to(smyth.name) == pytest.approx(before)
        assert self.pipeline.classifier.classify("JOHN SMYTH").name.compare_to(smith.name) == pytest.approx(before)
        assert DEFAULT_NAME_WEIGHTS == {"levenshtein": 0.80, "jaro_winkler": 0.15, "metaphone": 0.05}

    def test_build_streets(self):
        database = self.pipeline.build_streets(STREET_NAMES)

        assert database.primaries() == ["CORN NECK ROAD", "BEACH AVE", "OLD TOWN RD", "SPRING ST"]
        assert self.pipeline.address_parser.street_database is not None
        assert "street_database" in self.pipeline.stage_durations

    def test_frame_to_records(self):
        df = pd.DataFrame({
            "raw_name": ["SMITH, JOHN"],
            "account_number": [5001.0],
            "household_identifier": ["H1"],
            "is_head_of_household": [True],
            "email": [None]
        })
        records = self.pipeline.frame_to_records(df, BLOOMERANG_CSV)

        assert records[0]["account_number"] == "5001"
        assert records[0]["address_fields"] == {}
        assert str(records[0]["other_info"].household_identifier) == "H1"
        assert records[0]["other_info"].is_head_of_household is True

    def test_classify_frame_requires_raw_name(self):
        with pytest.raises(ValueError):
            self.pipeline.classify_frame(pd.DataFrame({"owner": ["SMITH, JOHN"]}), VISION_APPRAISAL)

    def test_complete_run(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)

        expected_keys = [
            "base_entities", "candidate_entities", "match_results", "results", "failures",
            "unmatched_streets", "statistics", "calibration", "stage_durations", "total_duration"
        ]
        for key in expected_keys:
            assert key in results

        assert len(results["base_entities"]) == 1
        assert len(results["candidate_entities"]) == 3
        assert len(results["match_results"]) == 1
        assert list(results["results"].columns) == RESULT_COLUMNS

        for stage in ["street_database", "classification", "matching", "calibration"]:
            assert stage in results["stage_durations"]

    def test_failures_reported_with_source(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)
        failures = results["failures"]

        assert list(failures.columns) == FAILURE_COLUMNS + ["source"]
        assert len(failures) == 1
        assert failures.iloc[0]["raw_name"] == "SMITH JOHN,"
        assert failures.iloc[0]["source"] == BLOOMERANG_CSV
        assert results["statistics"]["classified"] == {"base": 1, "candidate": 3, "failures": 1}

    def test_matching_individual_found(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)
        match_result = results["match_results"][0]

        individuals = match_result.matches_by_type[EntityType.INDIVIDUAL]
        assert len(individuals.matches) == 1
        assert individuals.matches[0].entity.location_identifier == "101"
        assert individuals.matches[0].score == pytest.approx(1.0)

        rows = results["results"]
        individual_rows = rows[rows["candidate_type"] == EntityType.INDIVIDUAL.value]
        assert list(individual_rows["candidate_key"]) == ["VISION_APPRAISAL:101"]
        assert list(individual_rows["base_key"]) == ["BLOOMERANG_CSV:5001"]

    def test_entity_types_and_addresses(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)
        by_id = {e.location_identifier: e for e in results["candidate_entities"]}

        assert by_id["101"].entity_type == EntityType.INDIVIDUAL
        assert by_id["102"].entity_type == EntityType.LEGAL_CONSTRUCT
        assert by_id["103"].entity_type == EntityType.HOUSEHOLD
        assert len(by_id["103"].members) == 2

        property_address = by_id["101"].contact_info.primary_address
        assert property_address.is_local
        assert property_address.street_key == "CORN NECK ROAD"

    def test_unmatched_local_streets_collected(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)
        unmatched = results["unmatched_streets"]

        assert "MOHEGAN TRAIL" in list(unmatched["street"])
        assert "CORN NECK RD" not in list(unmatched["street"])

    def test_calibration_output(self):
        results = self.pipeline.run(self.base_df, self.candidate_df, street_names=STREET_NAMES)
        calibration = results["calibration"]

        assert "Individual-to-Individual" in calibration["by_type"]
        assert 0.0 <= calibration["overall_minimum"] <= 1.0

    def test_reconcile_convenience_function(self):
        results = reconcile(self.base_df, self.candidate_df, config={"matching": {"minimum_group_size": 5}})

        assert len(results["base_entities"]) == 1
        assert results["match_results"][0].config["minimum_group_size"] == 5
        assert "street_database" not in results["stage_durations"]


if __name__ == "__main__":
    pytest.main([__file__])
