"""
Canonical street database.

Each canonical street is a StreetEntry holding a primary term plus
homonyms (verified spellings), synonyms (similar but unverified) and
candidates (pending review). The database maps every known term to its
street and resolves free-text street strings against it.

Edits never mutate the mapping a reader holds: each edit builds new
entry and index dictionaries, swaps them in and bumps ``version``.
Matching passes call ``snapshot()`` once and keep a stable view.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd

from ..compare.base import MANUAL_EDIT, AttributedTerm
from ..compare.similarity import levenshtein_similarity, normalize_key
from ..errors import DuplicateAliasError, StreetNotFoundError
from .abbreviations import DEFAULT_STREET_TYPES, StreetTypeAbbreviations

logger = logging.getLogger(__name__)

HOMONYMS = "homonyms"
SYNONYMS = "synonyms"
CANDIDATES = "candidates"
ALIAS_CATEGORIES = (HOMONYMS, SYNONYMS, CANDIDATES)

NO_ALIASES = -1.0


@dataclass(frozen=True)
class StreetEntry:
    """
    One canonical street and its alias terms.

    Attributes:
        primary: Preferred spelling
        homonyms: Verified alternative spellings
        synonyms: Similar spellings not verified to be the same street
        candidates: Spellings awaiting review
    """

    primary: AttributedTerm
    homonyms: Tuple[AttributedTerm, ...] = ()
    synonyms: Tuple[AttributedTerm, ...] = ()
    candidates: Tuple[AttributedTerm, ...] = ()
    abbreviations: StreetTypeAbbreviations = field(default=DEFAULT_STREET_TYPES, compare=False, repr=False)

    @property
    def key(self) -> str:
        return normalize_key(self.primary.term)

    @property
    def primary_term(self) -> str:
        return str(self.primary)

    def aliases(self, category: str) -> Tuple[AttributedTerm, ...]:
        if category not in ALIAS_CATEGORIES:
            raise ValueError(f"Unknown alias category: {category}")
        return getattr(self, category)

    def all_terms(self) -> List[AttributedTerm]:
        """Primary first, then homonyms, synonyms and candidates."""
        return [self.primary, *self.homonyms, *self.synonyms, *self.candidates]

    def _score(self, term: AttributedTerm, text: str) -> float:
        prepared_a, prepared_b = self.abbreviations.prepare_for_comparison(str(term), text)
        return levenshtein_similarity(prepared_a, prepared_b)

    def _best(self, terms: Iterable[AttributedTerm], text: str) -> float:
        scores = [self._score(term, text) for term in terms]
        return max(scores) if scores else NO_ALIASES

    def compare_to(self, text: str) -> Dict[str, float]:
        """
        Score a street string against each alias category.

        Args:
            text: Free-text street name

        Returns:
            Dict with primary, homonym, synonym and candidate scores; a
            category with no terms scores -1
        """
        return {
            "primary": self._score(self.primary, text),
            "homonym": self._best(self.homonyms, text),
            "synonym": self._best(self.synonyms, text),
            "candidate": self._best(self.candidates, text)
        }

    def is_synonym(self, text: Optional[str]) -> bool:
        key = normalize_key(text)
        return any(term.key == key for term in self.synonyms)

    def address_match_score(self, text: str) -> float:
        """Best of the primary, homonym and candidate scores; synonyms never count."""
        scores = self.compare_to(text)
        return max(scores["primary"], scores["homonym"], scores["candidate"])

    def with_alias(self, term: AttributedTerm, category: str) -> "StreetEntry":
        return replace(self, **{category: self.aliases(category) + (term,)})

    def without_term(self, key: str) -> Tuple["StreetEntry", Optional[AttributedTerm]]:
        """Remove an alias term by normalized key, returning the new entry and the removed term."""
        for category in ALIAS_CATEGORIES:
            terms = self.aliases(category)
            for position, term in enumerate(terms):
                if term.key == key:
                    remaining = terms[:position] + terms[position + 1:]
                    return replace(self, **{category: remaining}), term
        return self, None

    def to_dict(self) -> Dict[str, object]:
        return {
            "primary": self.primary_term,
            HOMONYMS: [str(t) for t in self.homonyms],
            SYNONYMS: [str(t) for t in self.synonyms],
            CANDIDATES: [str(t) for t in self.candidates]
        }


class StreetDatabase:
    """
    Versioned, copy-on-write collection of canonical streets.

    Args:
        entries: Initial street entries
        config: ``streets`` configuration section
        abbreviations: Street-type table used for similarity scoring
    """

    def __init__(self, entries: Optional[Iterable[StreetEntry]] = None, config: Optional[Dict] = None,
                 abbreviations: Optional[StreetTypeAbbreviations] = None):
        self.config = config or {}
        self.lookup_threshold = self.config.get("lookup_threshold", 0.80)
        self.abbreviations = abbreviations or DEFAULT_STREET_TYPES
        self.version = 0

        table: Dict[str, StreetEntry] = {}
        for entry in entries or []:
            if entry.key in table:
                logger.warning(f"Duplicate street entry '{entry.primary_term}' ignored")
                continue
            table[entry.key] = entry

        self._entries = table
        self._variation_index = self._build_variation_index(table)

        logger.info(f"Initialized StreetDatabase with {len(self._entries)} streets "
                    f"and {len(self._variation_index)} variations")

    @staticmethod
    def _build_variation_index(entries: Dict[str, StreetEntry]) -> Dict[str, str]:
        """Map every normalized term to its primary key; the first mapping of a term wins."""
        index: Dict[str, str] = {}
        for key in entries:
            index.setdefault(key, key)
        for key, entry in entries.items():
            for term in entry.all_terms()[1:]:
                index.setdefault(term.key, key)
        return index

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StreetEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, term: str) -> bool:
        return self.has(term)

    def has(self, term: str) -> bool:
        """Exact (normalized) membership of any primary or alias term."""
        return normalize_key(term) in self._variation_index

    def get(self, primary: str) -> Optional[StreetEntry]:
        return self._entries.get(normalize_key(primary))

    def primaries(self) -> List[str]:
        return [entry.primary_term for entry in self._entries.values()]

    def snapshot(self) -> "StreetDatabase":
        """
        Stable read-only view of the current version.

        Later edits on this database swap in new dictionaries and leave the
        snapshot untouched.
        """
        view = StreetDatabase.__new__(StreetDatabase)
        view.config = self.config
        view.lookup_threshold = self.lookup_threshold
        view.abbreviations = self.abbreviations
        view.version = self.version
        view._entries = self._entries
        view._variation_index = self._variation_index
        return view

    # Lookup

    def lookup_with_score(self, term: str, threshold: Optional[float] = None) -> Tuple[Optional[StreetEntry], float]:
        """
        Find the street a term belongs to.

        An exact hit in the variation index scores 1.0. Otherwise every
        street is scored with its address-match score and the best one
        strictly above the threshold wins.

        Args:
            term: Free-text street name
            threshold: Minimum similarity for the fuzzy path

        Returns:
            Tuple of (entry or None, best score seen)
        """
        key = normalize_key(term)
        if not key:
            return None, 0.0

        primary_key = self._variation_index.get(key)
        if primary_key is not None:
            return self._entries[primary_key], 1.0

        threshold = self.lookup_threshold if threshold is None else threshold
        best_entry = None
        best_score = 0.0
        for entry in self._entries.values():
            score = entry.address_match_score(key)
            if score > best_score:
                best_score = score
                best_entry = entry

        if best_entry is not None and best_score > threshold:
            return best_entry, best_score
        return None, best_score

    def lookup(self, term: str, threshold: Optional[float] = None) -> Optional[StreetEntry]:
        entry, _ = self.lookup_with_score(term, threshold)
        return entry

    def resolve_street_alias(self, text: str) -> Dict[str, Any]:
        """
        Resolve a street string and report its per-category scores.

        When nothing clears the lookup threshold, ``street`` is None and the
        scores are those of the closest street, so curators can see how far
        off the string was.

        Returns:
            Dict with street (primary term or None) and the primary,
            homonym, synonym and candidate scores
        """
        entry = self.lookup(text)
        resolved = entry is not None
        if entry is None:
            entry, _ = self.lookup_with_score(text, threshold=-1.0)

        if entry is None:
            return {"street": None, "primary": 0.0, "homonym": NO_ALIASES,
                    "synonym": NO_ALIASES, "candidate": NO_ALIASES}

        result: Dict[str, Any] = {"street": entry.primary_term if resolved else None}
        result.update(entry.compare_to(normalize_key(text)))
        return result

    # Edits

    def _commit(self, entries: Dict[str, StreetEntry], action: str):
        self._entries = entries
        self._variation_index = self._build_variation_index(entries)
        self.version += 1
        logger.info(f"StreetDatabase v{self.version}: {action}")

    def _require(self, primary: str) -> StreetEntry:
        entry = self.get(primary)
        if entry is None:
            raise StreetNotFoundError(primary)
        return entry

    def _check_unused(self, term: str, allowed_primary: Optional[str] = None):
        key = normalize_key(term)
        existing = self._variation_index.get(key)
        if existing is not None and existing != allowed_primary:
            raise DuplicateAliasError(term, self._entries[existing].primary_term)

    def add_alias(self, primary: str, term: str, category: str = HOMONYMS,
                  source: str = MANUAL_EDIT) -> StreetEntry:
        """
        Add an alias term to an existing street.

        Args:
            primary: Primary term of the street to extend
            term: New alias term
            category: homonyms, synonyms or candidates
            source: Provenance recorded on the new term

        Returns:
            The updated street entry

        Raises:
            StreetNotFoundError: No street has that primary term
            DuplicateAliasError: The term already belongs to a street
        """
        entry = self._require(primary)
        if category not in ALIAS_CATEGORIES:
            raise ValueError(f"Unknown alias category: {category}")
        if not normalize_key(term):
            raise ValueError("Alias term must not be blank")
        self._check_unused(term)

        updated = entry.with_alias(AttributedTerm(normalize_key(term), source, -1, "add_alias", "street"), category)
        entries = dict(self._entries)
        entries[entry.key] = updated
        self._commit(entries, f"added {category[:-1]} '{term}' to '{entry.primary_term}'")
        return updated

    def create_street(self, term: str, source: str = MANUAL_EDIT) -> StreetEntry:
        """
        Create a new street whose primary is ``term``.

        Raises:
            DuplicateAliasError: The term already belongs to a street
        """
        if not normalize_key(term):
            raise ValueError("Street term must not be blank")
        self._check_unused(term)

        entry = StreetEntry(AttributedTerm(normalize_key(term), source, -1, "create_street", "street"),
                            abbreviations=self.abbreviations)
        entries = dict(self._entries)
        entries[entry.key] = entry
        self._commit(entries, f"created street '{entry.primary_term}'")
        return entry

    def change_primary_alias(self, old_primary: str, new_primary: str,
                             move_old_to: Optional[str] = HOMONYMS) -> StreetEntry:
        """
        Make another term the primary of a street.

        When the new term is already one of the street's aliases it is
        promoted with its provenance intact. The old primary moves to
        ``move_old_to`` or is dropped when that is ``"discard"`` or None.

        Raises:
            StreetNotFoundError: ``old_primary`` is not a primary term
            DuplicateAliasError: ``new_primary`` belongs to another street
        """
        entry = self._require(old_primary)
        if move_old_to not in (None, "discard") and move_old_to not in ALIAS_CATEGORIES:
            raise ValueError(f"Unknown alias category: {move_old_to}")
        self._check_unused(new_primary, allowed_primary=entry.key)

        new_key = normalize_key(new_primary)
        if new_key == entry.key:
            return entry

        updated, promoted = entry.without_term(new_key)
        if promoted is None:
            promoted = AttributedTerm(new_key, MANUAL_EDIT, -1, "change_primary_alias", entry.primary.field_name)

        updated = replace(updated, primary=promoted)
        if move_old_to not in (None, "discard"):
            updated = updated.with_alias(entry.primary, move_old_to)

        entries = {}
        for key, existing in self._entries.items():
            if key == entry.key:
                entries[updated.key] = updated
            else:
                entries[key] = existing

        self._commit(entries, f"primary '{entry.primary_term}' changed to '{updated.primary_term}'")
        return updated

    def remove_street(self, primary: str) -> StreetEntry:
        entry = self._require(primary)
        entries = {k: v for k, v in self._entries.items() if k != entry.key}
        self._commit(entries, f"removed street '{entry.primary_term}'")
        return entry

    def to_frame(self) -> pd.DataFrame:
        """One row per term with its category and street primary."""
        rows = []
        for entry in self._entries.values():
            rows.append({"primary": entry.primary_term, "term": entry.primary_term,
                         "category": "primary", "source": entry.primary.source})
            for category in ALIAS_CATEGORIES:
                for term in entry.aliases(category):
                    rows.append({"primary": entry.primary_term, "term": str(term),
                                 "category": category, "source": term.source})
        return pd.DataFrame(rows, columns=["primary", "term", "category", "source"])


def resolve_street_alias(candidate: str, database: StreetDatabase) -> Dict[str, Any]:
    """
    Convenience function to resolve a street string against a database.

    Args:
        candidate: Free-text street name
        database: Canonical street database

    Returns:
        Dict with the resolved street (or None) and its primary, homonym,
        synonym and candidate scores
    """
    return database.resolve_street_alias(candidate)
