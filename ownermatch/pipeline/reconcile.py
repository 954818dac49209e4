"""
Batch reconciliation orchestrator for OwnerMatch.

Coordinates street database construction, owner-name classification of
both record sets, best-match selection and threshold calibration. Record
sets come in and results go out as pandas DataFrames; the pipeline never
reads or writes record files.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..address.builder import build_street_database
from ..address.parser import AddressParser, UnmatchedStreetTracker
from ..address.streets import StreetDatabase
from ..classify.business_filter import BusinessEntityFilter
from ..classify.classifier import FAILURE_COLUMNS, NameClassifier
from ..compare.base import BLOOMERANG_CSV, VISION_APPRAISAL
from ..compare.similarity import resolve_name_weights
from ..config import get_default_config, get_section, load_config, merge_configs, validate_config
from ..entities.entity import Entity, EntityType
from ..entities.household import HouseholdInformation
from ..errors import ConfigurationError
from ..match.calibration import ThresholdCalibrator, collect_scores
from ..match.entity_scorer import EntityScorer
from ..match.selector import RESULT_COLUMNS, MatchResult, MatchSelector

logger = logging.getLogger(__name__)

ADDRESS_COLUMNS = ["property_location", "primary_address", "secondary_addresses", "email", "phone"]


def _value(row: pd.Series, column: str) -> Any:
    if column not in row.index:
        return None
    value = row[column]
    if isinstance(value, (list, tuple)):
        return list(value)
    if pd.isna(value):
        return None
    return value


class ReconciliationPipeline:
    """
    Reconciles a base record set against a candidate record set.

    Input frames need a ``raw_name`` column and may carry
    ``location_identifier``, ``account_number``, the address columns
    ``property_location``, ``primary_address``, ``secondary_addresses``,
    ``email`` and ``phone``, and the household columns
    ``household_identifier``, ``household_name`` and ``is_head_of_household``.

    Args:
        config: Full OwnerMatch configuration (merged over the defaults)
        config_path: YAML configuration file, used when ``config`` is omitted
        street_database: Canonical street database for local-address detection
    """

    def __init__(self, config: Optional[Dict] = None, config_path: Optional[str] = None,
                 street_database: Optional[StreetDatabase] = None):
        if config is not None:
            self.config = merge_configs(get_default_config(), config)
        elif config_path is not None:
            self.config = load_config(config_path)
        else:
            self.config = get_default_config()

        if not validate_config(self.config):
            raise ConfigurationError("Invalid OwnerMatch configuration")

        self.name_weights = resolve_name_weights(self.config["comparison"].get("name_similarity_weights"))

        self.street_database = street_database
        self.tracker = UnmatchedStreetTracker()
        self.business_filter = BusinessEntityFilter(get_section(self.config, "classification"))
        self.calibrator = ThresholdCalibrator(get_section(self.config, "calibration"))
        self._build_components()

        self.pipeline_start_time = None
        self.stage_times: Dict[str, float] = {}
        self.stage_durations: Dict[str, float] = {}

        logger.info("Initialized OwnerMatch reconciliation pipeline")

    def _build_components(self):
        self.address_parser = AddressParser(get_section(self.config, "address"),
                                            self.street_database, self.tracker)
        self.classifier = NameClassifier(get_section(self.config, "classification"), self.address_parser,
                                         name_weights=self.name_weights)
        self.scorer = EntityScorer(business_filter=self.business_filter)
        self.selector = MatchSelector(get_section(self.config, "matching"), self.scorer)

    def _start_stage_timer(self, stage_name: str):
        self.stage_times[stage_name] = time.time()
        logger.info(f"Starting stage: {stage_name}")

    def _end_stage_timer(self, stage_name: str):
        if stage_name in self.stage_times:
            duration = time.time() - self.stage_times[stage_name]
            self.stage_durations[stage_name] = duration
            logger.info(f"Completed stage: {stage_name} in {duration:.2f} seconds")

    def build_streets(self, street_names: Iterable[str]) -> StreetDatabase:
        """
        Build the canonical street database and rebuild the address parser on it.

        Args:
            street_names: Raw street names, in source order

        Returns:
            New street database
        """
        self._start_stage_timer("street_database")
        self.street_database = build_street_database(list(street_names), get_section(self.config, "streets"))
        self._build_components()
        logger.info(f"Street database holds {len(self.street_database)} streets")
        self._end_stage_timer("street_database")
        return self.street_database

    def frame_to_records(self, df: pd.DataFrame, source: str) -> List[Dict[str, Any]]:
        """Turn frame rows into classifier records."""
        records = []
        for position, (_, row) in enumerate(df.iterrows()):
            address_fields = {c: _value(row, c) for c in ADDRESS_COLUMNS if _value(row, c) is not None}

            other_info = None
            household_fields = {c: _value(row, c) for c in
                                ("household_identifier", "household_name", "is_head_of_household")}
            if any(v is not None for v in household_fields.values()):
                head = household_fields["is_head_of_household"]
                other_info = HouseholdInformation(
                    household_identifier=_text(household_fields["household_identifier"]),
                    household_name=household_fields["household_name"],
                    is_head_of_household=None if head is None else bool(head),
                    source=source,
                    index=position
                )

            records.append({
                "raw_name": _value(row, "raw_name"),
                "address_fields": address_fields,
                "location_identifier": _text(_value(row, "location_identifier")),
                "account_number": _text(_value(row, "account_number")),
                "other_info": other_info,
                "index": position,
                "source": source
            })
        return records

    def classify_frame(self, df: pd.DataFrame, source: str) -> Tuple[List[Entity], pd.DataFrame]:
        """
        Classify every row of a record frame.

        Returns:
            Tuple of (entities, failure report with a source column)
        """
        if "raw_name" not in df.columns:
            raise ValueError("Record frame needs a raw_name column")

        entities, failures = self.classifier.classify_batch(self.frame_to_records(df, source), source)
        failures = failures.assign(source=source)
        return entities, failures

    def match_entities(self, bases: List[Entity], candidates: List[Entity]) -> List[MatchResult]:
        """Best matches of each base entity among the candidates."""
        candidates_by_type: Dict[EntityType, List[Entity]] = {t: [] for t in EntityType}
        for candidate in candidates:
            candidates_by_type[candidate.entity_type].append(candidate)
        return self.selector.find_best_matches_batch(bases, candidates_by_type)

    def run(self, base_df: pd.DataFrame, candidate_df: pd.DataFrame,
            base_source: str = BLOOMERANG_CSV, candidate_source: str = VISION_APPRAISAL,
            street_names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Run the complete reconciliation.

        Args:
            base_df: Records to find matches for (donor records by default)
            candidate_df: Records to search (property owner records by default)
            base_source: Source identifier of the base records
            candidate_source: Source identifier of the candidate records
            street_names: Raw street list for a fresh street database

        Returns:
            Dictionary with results, failures, unmatched_streets, statistics,
            calibration and stage_durations
        """
        self.pipeline_start_time = time.time()
        logger.info(f"Starting OwnerMatch reconciliation of {len(base_df)} base "
                    f"and {len(candidate_df)} candidate records")

        if street_names is not None:
            self.build_streets(street_names)

        self._start_stage_timer("classification")
        base_entities, base_failures = self.classify_frame(base_df, base_source)
        candidate_entities, candidate_failures = self.classify_frame(candidate_df, candidate_source)
        failures = pd.concat([base_failures, candidate_failures], ignore_index=True)
        self._end_stage_timer("classification")

        self._start_stage_timer("matching")
        match_results = self.match_entities(base_entities, candidate_entities)
        frames = [r.to_frame() for r in match_results]
        frames = [f for f in frames if not f.empty]
        results_df = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=RESULT_COLUMNS)
        self._end_stage_timer("matching")

        self._start_stage_timer("calibration")
        calibration = self.calibrator.recommend_thresholds(collect_scores(match_results))
        self._end_stage_timer("calibration")

        statistics = self.selector.get_selection_statistics(match_results)
        statistics["classified"] = {
            "base": len(base_entities),
            "candidate": len(candidate_entities),
            "failures": len(failures)
        }
        statistics["rules"] = self.classifier.rule_summary(base_entities + candidate_entities)

        total_duration = time.time() - self.pipeline_start_time
        logger.info(f"Reconciliation completed in {total_duration:.2f} seconds: "
                    f"{len(results_df)} selected matches, {len(failures)} classification failures")

        return {
            "base_entities": base_entities,
            "candidate_entities": candidate_entities,
            "match_results": match_results,
            "results": results_df,
            "failures": failures.reindex(columns=FAILURE_COLUMNS + ["source"]),
            "unmatched_streets": self.tracker.to_frame(),
            "statistics": statistics,
            "calibration": calibration,
            "stage_durations": dict(self.stage_durations),
            "total_duration": total_duration
        }


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def reconcile(base_df: pd.DataFrame, candidate_df: pd.DataFrame,
              config: Optional[Dict] = None, street_names: Optional[Iterable[str]] = None,
              **kwargs) -> Dict[str, Any]:
    """
    Convenience function to reconcile two record frames.

    Args:
        base_df: Records to find matches for
        candidate_df: Records to search
        config: OwnerMatch configuration (defaults when omitted)
        street_names: Raw street list for the street database
        **kwargs: Passed through to ``ReconciliationPipeline.run``

    Returns:
        Pipeline results dictionary
    """
    pipeline = ReconciliationPipeline(config)
    return pipeline.run(base_df, candidate_df, street_names=street_names, **kwargs)
