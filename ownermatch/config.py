"""
Configuration utilities for OwnerMatch.

Provides configuration loading, defaults and validation for the comparison,
classification, address, street database, matching and calibration
components.
"""

import copy
import logging
import yaml
from typing import Dict, Any, List
from pathlib import Path

from .compare.similarity import DEFAULT_NAME_WEIGHTS

logger = logging.getLogger(__name__)

# Qualifier words that mark a name as non-personal
BUSINESS_TERMS = [
    "LLC", "INC", "CORP", "TRUST", "TRUSTEE", "ESTATE", "FOUNDATION",
    "ASSOCIATION", "SOCIETY", "COMPANY", "ENTERPRISES", "PROPERTIES",
    "INVESTMENTS", "HOLDINGS", "MANAGEMENT", "SERVICES", "GROUP", "PARTNERS",
    "PARTNERSHIP", "CO", "LTD", "LIMITED", "INCORPORATED", "CONSERVANCY"
]

# Complete institutional and governmental owner names
INSTITUTIONAL_NAMES = [
    "TOWN OF NEW SHOREHAM", "584 BEACH AVE", "BI PARTNERSHIP",
    "STATE OF RI AIRPORT", "ST ANDREWS CHURCH", "SWAIN ASSOCIATES",
    "CORMORANT COVE ASSOCIATION", "WINDHOVER ASSOCIATES ET AL",
    "LTM 2019 FAMILYTRUST", "PRESS/G FLP", "BI SALES CORP",
    "TOWN OF NEW SHOREHAM ETAL", "US GOVERNMENT", "BI UTILITY DISTRICT",
    "SERF HEAVY INDUSTRIES", "STATE OF RI", "SOUTHEAST LIGHTHOUSE FDN",
    "BI MARITIME INSTITUTE", "STATE OF RI HIGHWAY DEPT",
    "NARRAGANSETT ELECTRIC CO.", "DEEPWATER WIND", "FEDERAL PROPERTIES OF RI",
    "BI ECONOMIC DEVELOPMENT FDN", "RI BOY SCOUTS OF AMERICA",
    "SHEEPS MEADOW HOMEOWNERS ASSOC", "BI CLUB", "WBI PARTNERSHIP",
    "STATE OF RI ACTING BY/THRU", "BLOCK ISLAND HOUSING BOARD",
    "BLOCK ISLAND UTILITY DISTRICT", "STATE OF RHODE ISLAND",
    "THE NATURE CONSERVANCY ETAL", "US FISH AND WILDLIFE"
]

REQUIRED_SECTIONS = ["comparison", "classification", "address", "streets", "matching", "calibration"]


def load_config(config_path: str = "config/ownermatch.yaml") -> Dict[str, Any]:
    """
    Load OwnerMatch configuration from YAML file.

    Sections missing from the file are filled from the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Configuration file {config_path} not found, using defaults")
            return get_default_config()

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        merged = merge_configs(get_default_config(), config)
        logger.info(f"Loaded configuration from {config_path}")
        return merged

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration from {config_path}: {e}")
        return get_default_config()


def get_default_config() -> Dict[str, Any]:
    """
    Get default OwnerMatch configuration.

    Returns:
        Default configuration dictionary
    """
    return {
        "comparison": {
            "name_similarity_weights": {
                "levenshtein": 0.80,
                "jaro_winkler": 0.15,
                "metaphone": 0.05
            }
        },
        "classification": {
            "business_terms": list(BUSINESS_TERMS),
            "legal_terms": ["TRUST", "ESTATE", "LLC"],
            "institutional_names": list(INSTITUTIONAL_NAMES)
        },
        "address": {
            "local_zip": "02807",
            "local_city": "BLOCK ISLAND",
            "local_city_aliases": ["BLOCK ISLAND", "NEW SHOREHAM"],
            "local_state": "RI",
            "placeholder_number": "9999",
            "street_match_threshold": 0.80,
            "default_phone_region": "US"
        },
        "streets": {
            "homonym_threshold": 0.875,
            "synonym_threshold": 0.845,
            "lookup_threshold": 0.80
        },
        "matching": {
            "percentile_threshold": 98,
            "minimum_group_size": 10,
            "global_minimum_score": 0.31,
            "name_score_override": 0.985,
            "per_type_pair_minimums": {
                "individual:individual": 0.50,
                "individual:household": 0.50,
                "household:individual": 0.50
            },
            "per_type_pair_cutoffs": {
                "individual:individual": 0.75
            },
            "include_components": True
        },
        "calibration": {
            "minimum_corpus_size": 10,
            "gap_multiplier": 5.0,
            "minimum_gap": 0.02,
            "lower_gap_minimum": 0.05,
            "upper_gap_minimum": 0.03
        }
    }


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate OwnerMatch configuration.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    for section in REQUIRED_SECTIONS:
        if section not in config:
            logger.error(f"Missing required configuration section: {section}")
            return False

    classification = config.get("classification", {})
    for key in ["business_terms", "legal_terms", "institutional_names"]:
        if not isinstance(classification.get(key, []), list):
            logger.error(f"classification.{key} must be a list")
            return False

    matching = config.get("matching", {})
    percentile = matching.get("percentile_threshold", 98)
    if not isinstance(percentile, (int, float)) or not 0 <= percentile <= 100:
        logger.error("matching.percentile_threshold must be a number between 0 and 100")
        return False

    group_size = matching.get("minimum_group_size", 10)
    if not isinstance(group_size, int) or group_size < 1:
        logger.error("matching.minimum_group_size must be a positive integer")
        return False

    for key in ["global_minimum_score", "name_score_override"]:
        value = matching.get(key, 0.0)
        if not _is_unit_interval(value):
            logger.error(f"matching.{key} must be a number between 0 and 1")
            return False

    for key in ["per_type_pair_minimums", "per_type_pair_cutoffs"]:
        for pair, value in matching.get(key, {}).items():
            if not _is_unit_interval(value):
                logger.error(f"matching.{key}[{pair}] must be a number between 0 and 1")
                return False

    streets = config.get("streets", {})
    if streets.get("synonym_threshold", 0.845) > streets.get("homonym_threshold", 0.875):
        logger.error("streets.synonym_threshold must not exceed streets.homonym_threshold")
        return False

    weights = config.get("comparison", {}).get("name_similarity_weights", {})
    if any(not isinstance(w, (int, float)) or w < 0 for w in weights.values()):
        logger.error("comparison.name_similarity_weights must be non-negative numbers")
        return False
    unknown = set(weights) - set(DEFAULT_NAME_WEIGHTS)
    if unknown:
        logger.error(f"Unknown comparison.name_similarity_weights: {sorted(unknown)}")
        return False

    logger.info("Configuration validation passed")
    return True


def _is_unit_interval(value: Any) -> bool:
    return isinstance(value, (int, float)) and 0 <= value <= 1


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def get_section(config: Dict[str, Any], section: str) -> Dict[str, Any]:
    """
    Return one configuration section with defaults filled in.

    Args:
        config: Full configuration dictionary (may be partial)
        section: Section name

    Returns:
        Section dictionary
    """
    defaults = get_default_config().get(section, {})
    return merge_configs(defaults, config.get(section, {}) or {})


def save_config(config: Dict[str, Any], config_path: str) -> bool:
    """
    Save OwnerMatch configuration to YAML file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.dump(config, f, default_flow_style=False, indent=2)

        logger.info(f"Saved configuration to {config_path}")
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False


def normalize_terms(terms: List[str]) -> List[str]:
    """Upper-case and trim a list of configured terms, dropping blanks."""
    return [t.strip().upper() for t in terms if t and t.strip()]
