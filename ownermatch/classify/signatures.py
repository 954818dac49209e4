"""
Signatures computed once per owner name and shared by every cascade rule.
"""

import re
from typing import FrozenSet, List, Optional

from ..compare.similarity import strip_punctuation

_comma_spacing = re.compile(r"\s*,\s*")
_trailing_comma = re.compile(r",\s*$")


def standardize_owner_name(raw_name: Optional[str]) -> str:
    """
    Upper-case, trim and standardize comma spacing.

    Commas lose any space before them and gain one space after; a trailing
    comma is kept tight against the last word.
    """
    if raw_name is None:
        return ""
    name = str(raw_name).strip().upper()
    name = _comma_spacing.sub(", ", name)
    name = _trailing_comma.sub(",", name)
    return name.strip()


class PunctuationProfile:
    """Presence of the three structural marks in a word list."""

    def __init__(self, words: List[str]):
        joined = " ".join(words)
        self.has_commas = "," in joined
        self.has_ampersand = "&" in joined
        self.has_slash = "/" in joined
        self.comma_count = joined.count(",")

    @property
    def has_major_punctuation(self) -> bool:
        return self.has_commas or self.has_ampersand or self.has_slash

    @property
    def commas_only(self) -> bool:
        return self.has_commas and not self.has_ampersand and not self.has_slash

    @property
    def ampersand_only(self) -> bool:
        return self.has_ampersand and not self.has_commas and not self.has_slash

    @property
    def slash_only(self) -> bool:
        return self.has_slash and not self.has_commas and not self.has_ampersand


class NameSignature:
    """
    Word list, business-term presence and punctuation profile of one name.

    Args:
        name: Standardized owner name
        business_terms: Upper-case qualifier words
    """

    def __init__(self, name: str, business_terms: FrozenSet[str]):
        self.name = name
        self.business_terms = business_terms
        self.words = name.split()
        self.word_count = len(self.words)
        self.punctuation = PunctuationProfile(self.words)
        self.has_business_terms = any(self.is_business_word(w) for w in self.words)

    def is_business_word(self, word: str) -> bool:
        """Exact qualifier match after punctuation is stripped from the word."""
        return strip_punctuation(word.upper()) in self.business_terms

    def contains_any(self, terms) -> bool:
        return any(term in self.name for term in terms)

    # Word position predicates

    def first_word_ends_with_comma(self) -> bool:
        return bool(self.words) and self.words[0].endswith(",")

    def last_word_ends_with_comma(self) -> bool:
        return bool(self.words) and self.words[-1].endswith(",")

    def last_word_is_single_letter(self) -> bool:
        return bool(self.words) and len(strip_punctuation(self.words[-1])) == 1

    def second_word_is_single_letter(self) -> bool:
        return self.word_count > 1 and len(strip_punctuation(self.words[1])) == 1

    def second_word_is_ampersand(self) -> bool:
        return self.word_count > 1 and self.words[1] == "&"

    def ampersand_is_word(self) -> bool:
        return "&" in self.words

    def ampersand_index(self) -> int:
        return self.words.index("&") if "&" in self.words else -1

    def comma_word_has_word_before(self) -> bool:
        return any("," in word for word in self.words[1:])

    def first_and_third_words_match(self) -> bool:
        if self.word_count < 4:
            return False
        return strip_punctuation(self.words[0]) == strip_punctuation(self.words[2])

    def slash_halves_are_business_terms(self) -> bool:
        for word in self.words:
            if "/" in word:
                parts = word.split("/")
                if len(parts) != 2:
                    return False
                left, right = (p.strip().upper() for p in parts)
                return left in self.business_terms and right in self.business_terms
        return False

    def only_comma_in_first_word(self) -> bool:
        return (bool(self.words) and "," in self.words[0]
                and not any("," in word for word in self.words[1:]))

    def commas_in_first_and_after_ampersand(self) -> bool:
        position = self.ampersand_index()
        if position <= 0 or "," not in self.words[0]:
            return False
        after = self.words[position + 1:]
        return bool(after) and "," in after[0]

    def repeated_comma_word(self) -> Optional[str]:
        """The first comma-bearing word that occurs again later, if any."""
        for i, word in enumerate(self.words):
            if "," in word and word in self.words[i + 1:]:
                return word
        return None

    def one_word_after_ampersand(self) -> bool:
        position = self.ampersand_index()
        return position != -1 and position == self.word_count - 2

    def last_business_word_index(self) -> int:
        for i in range(self.word_count - 1, -1, -1):
            if self.is_business_word(self.words[i]):
                return i
        return -1

    def comma_before_last_business_word(self) -> bool:
        """No comma in the first word, and the word before the last qualifier has one."""
        if not self.words or "," in self.words[0]:
            return False
        position = self.last_business_word_index()
        if position <= 0:
            return False
        return "," in self.words[position - 1]
