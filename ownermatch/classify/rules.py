"""
Ordered rule cascade for owner-name classification.

Each rule pairs a predicate over a NameSignature with a builder that turns
the matching name into a typed, structured name. Rules are evaluated top to
bottom and the first match wins; the fallback rules at the end accept any
name no specific rule claimed and must stay last.
"""

import logging
from typing import Callable, FrozenSet, List, Optional, Sequence

from ..compare.similarity import normalize_spaces
from ..entities.entity import EntityType
from ..entities.names import HouseholdName, IndividualName, OrganizationName
from ..errors import ClassificationFailure
from .signatures import NameSignature

logger = logging.getLogger(__name__)

MASTER_LIST_RULE = "master_list"


class RuleContext:
    """Provenance and qualifier lists handed to rule builders."""

    def __init__(self, raw_name: str, legal_terms: FrozenSet[str],
                 source: Optional[str] = None, index: Optional[int] = None,
                 identifier: Optional[str] = None):
        self.raw_name = raw_name
        self.legal_terms = legal_terms
        self.source = source
        self.index = index
        self.identifier = identifier

    def individual(self, first=None, last=None, other=None, full=None) -> IndividualName:
        return IndividualName(first_name=_clean(first), last_name=_clean(last),
                              other_names=_clean(other), full_name=full,
                              source=self.source, index=self.index, identifier=self.identifier)

    def household(self, name: str, members: Sequence[IndividualName] = ()) -> HouseholdName:
        return HouseholdName(name, list(members), raw_name=self.raw_name, source=self.source,
                             index=self.index, identifier=self.identifier)

    def organization(self, name: str) -> OrganizationName:
        return OrganizationName(name, source=self.source, index=self.index, identifier=self.identifier)


class Classification:
    """Outcome of a cascade rule: entity type, structured name and rule id."""

    def __init__(self, entity_type: EntityType, name, rule: Optional[str] = None):
        self.entity_type = entity_type
        self.name = name
        self.rule = rule

    @property
    def member_names(self) -> List[IndividualName]:
        return list(self.name.members) if isinstance(self.name, HouseholdName) else []

    def __repr__(self):
        return f"Classification({self.entity_type.value}, {self.name!r}, rule={self.rule})"


class CascadeRule:
    """
    One predicate-to-classification mapping.

    Args:
        rule_id: Stable identifier reported with every classification
        description: Human-readable predicate summary
        predicate: Test over the name signature
        builder: Builds the Classification for a matching name
    """

    def __init__(self, rule_id: str, description: str,
                 predicate: Callable[[NameSignature], bool],
                 builder: Callable[[NameSignature, RuleContext], Classification],
                 fallback: bool = False):
        self.rule_id = rule_id
        self.description = description
        self.predicate = predicate
        self.builder = builder
        self.fallback = fallback

    def matches(self, signature: NameSignature) -> bool:
        return bool(self.predicate(signature))

    def build(self, signature: NameSignature, context: RuleContext) -> Classification:
        classification = self.builder(signature, context)
        classification.rule = self.rule_id
        return classification

    def __repr__(self):
        return f"CascadeRule({self.rule_id})"


def _clean(word: Optional[str]) -> Optional[str]:
    if word is None:
        return None
    text = normalize_spaces(word.replace(",", " ").replace("&", " "))
    return text or None


def _join(words: Sequence[str]) -> Optional[str]:
    return _clean(" ".join(words)) if words else None


def _person(context: RuleContext, words: Sequence[str], last: Optional[str]) -> Optional[IndividualName]:
    """First word is the first name, the rest are other names."""
    words = [w for w in words if _clean(w)]
    if not words:
        return None
    return context.individual(first=words[0], other=_join(words[1:]), last=last)


def _organization(signature: NameSignature, context: RuleContext, name: Optional[str] = None,
                  extra_legal_terms: Sequence[str] = ()) -> Classification:
    text = name or signature.name
    legal_terms = set(context.legal_terms) | set(extra_legal_terms)
    if any(term in text for term in legal_terms):
        return Classification(EntityType.LEGAL_CONSTRUCT, context.organization(text))
    return Classification(EntityType.BUSINESS, context.organization(text))


def _business(signature: NameSignature, context: RuleContext) -> Classification:
    return Classification(EntityType.BUSINESS, context.organization(signature.name))


def _legal(signature: NameSignature, context: RuleContext) -> Classification:
    return Classification(EntityType.LEGAL_CONSTRUCT, context.organization(signature.name))


def _without_commas(signature: NameSignature, context: RuleContext) -> Classification:
    return _organization(signature, context, normalize_spaces(signature.name.replace(",", "")))


def _full_name_individual(signature: NameSignature, context: RuleContext) -> Classification:
    return Classification(EntityType.INDIVIDUAL, context.individual(full=signature.name))


def _unparsed_household(signature: NameSignature, context: RuleContext) -> Classification:
    return Classification(EntityType.HOUSEHOLD, context.household(signature.name))


def _shared_last_household(context: RuleContext, last: str, members) -> Classification:
    last = _clean(last)
    household = context.household(f"{last} HOUSEHOLD", [m for m in members if m is not None])
    return Classification(EntityType.HOUSEHOLD, household)


# Builders for person and household patterns

def _last_first(signature, context):
    w = signature.words
    return Classification(EntityType.INDIVIDUAL, context.individual(first=w[1], last=w[0]))


def _trailing_comma_review(signature, context):
    raise ClassificationFailure(context.raw_name, "two words with a trailing comma need review",
                                "two_word_trailing_comma")


def _first_last(signature, context):
    w = signature.words
    return Classification(EntityType.INDIVIDUAL, context.individual(first=w[0], last=w[1]))


def _last_first_other(signature, context):
    w = signature.words
    return Classification(EntityType.INDIVIDUAL, context.individual(first=w[1], other=w[2], last=w[0]))


def _single_member_household(signature, context):
    """Household named after its only member, written first, other, last."""
    w = signature.words
    member = context.individual(first=w[1], other=w[2], last=w[0])
    return Classification(EntityType.HOUSEHOLD, context.household(member.complete_name, [member]))


def _first_other_last(signature, context):
    w = signature.words
    return Classification(EntityType.INDIVIDUAL, context.individual(first=w[0], other=w[1], last=w[2]))


def _four_word_shared_last_ampersand(signature, context):
    w = signature.words
    position = signature.ampersand_index()
    second = w[position + 1] if 0 <= position < len(w) - 1 else w[3]
    last = _clean(w[0])
    return _shared_last_household(context, last, [
        context.individual(first=w[1], last=last),
        context.individual(first=second, last=last)
    ])


def _four_word_repeated_last(signature, context):
    w = signature.words
    last = _clean(w[0])
    return _shared_last_household(context, last, [
        context.individual(first=w[1], last=last),
        context.individual(first=w[3], last=last)
    ])


def _four_word_two_last_names(signature, context):
    w = signature.words
    first_last = _clean(w[0])
    second_last = _clean(w[2])
    household = context.household(f"{first_last}-{second_last} HOUSEHOLD", [
        context.individual(first=w[1], last=first_last),
        context.individual(first=w[3], last=second_last)
    ])
    return Classification(EntityType.HOUSEHOLD, household)


def _ampersand_shared_last(signature, context):
    """First word is the shared last name; member names sit either side of '&'."""
    w = signature.words
    position = signature.ampersand_index()
    last = _clean(w[0])
    if position == -1:
        return _unparsed_household(signature, context)
    return _shared_last_household(context, last, [
        _person(context, w[1:position], last),
        _person(context, w[position + 1:], last)
    ])


def _person_with_role(signature, context):
    w = signature.words
    return Classification(EntityType.INDIVIDUAL, context.individual(first=w[1], last=w[0]))


def _multi_word_two_last_names(signature, context):
    w = signature.words
    position = signature.ampersand_index()
    first_last = _clean(w[0])
    second_last = _clean(w[position + 1])
    members = [
        _person(context, w[1:position], first_last),
        _person(context, w[position + 2:], second_last)
    ]
    household = context.household(signature.name, [m for m in members if m is not None])
    return Classification(EntityType.HOUSEHOLD, household)


def _multi_word_repeated_last(signature, context):
    w = signature.words
    repeated = signature.repeated_comma_word()
    positions = [i for i, word in enumerate(w) if word == repeated]
    last = _clean(repeated)

    segments = []
    for n, start in enumerate(positions):
        end = positions[n + 1] if n + 1 < len(positions) else len(w)
        segments.append(w[start + 1:end])

    return _shared_last_household(context, last, [_person(context, s, last) for s in segments])


# Predicates

def _two(sig):
    return sig.word_count == 2


def _three(sig):
    return sig.word_count == 3


def _four(sig):
    return sig.word_count == 4


def _many(sig):
    return sig.word_count >= 5


def _personal(sig):
    return not sig.has_business_terms


def _business_name(sig):
    return sig.has_business_terms


def _specific_many_word_pattern(sig) -> bool:
    p = sig.punctuation
    if p.has_ampersand and sig.only_comma_in_first_word():
        return True
    if p.has_ampersand and sig.commas_in_first_and_after_ampersand():
        return True
    if p.commas_only and p.comma_count > 1:
        return True
    if p.ampersand_only and sig.one_word_after_ampersand():
        return True
    return False


def _rule(rule_id, description, predicate, builder, fallback=False) -> CascadeRule:
    return CascadeRule(rule_id, description, predicate, builder, fallback)


CASCADE: List[CascadeRule] = [
    # Two words
    _rule("two_word_last_first", "2 words, no qualifier, comma ends the first word",
          lambda s: _two(s) and _personal(s) and s.punctuation.has_commas and s.first_word_ends_with_comma(),
          _last_first),
    _rule("two_word_trailing_comma", "2 words, no qualifier, comma ends the last word",
          lambda s: (_two(s) and _personal(s) and s.punctuation.has_commas and s.last_word_ends_with_comma()
                     and not s.first_word_ends_with_comma()),
          _trailing_comma_review),
    _rule("two_word_first_last", "2 words, no qualifier, no punctuation",
          lambda s: _two(s) and _personal(s) and not s.punctuation.has_major_punctuation,
          _first_last),
    _rule("two_word_business_comma", "2 words, qualifier, comma",
          lambda s: _two(s) and _business_name(s) and s.punctuation.has_commas,
          _organization),
    _rule("two_word_business", "2 words, qualifier, no punctuation",
          lambda s: _two(s) and _business_name(s) and not s.punctuation.has_major_punctuation,
          _organization),

    # Three words
    _rule("three_word_last_first_other", "3 words, no qualifier, commas only, comma ends the first word",
          lambda s: _three(s) and _personal(s) and s.punctuation.commas_only and s.first_word_ends_with_comma(),
          _single_member_household),
    _rule("three_word_inner_comma", "3 words, no qualifier, commas only, a word precedes the comma word",
          lambda s: (_three(s) and _personal(s) and s.punctuation.commas_only and s.comma_word_has_word_before()
                     and not s.first_word_ends_with_comma()),
          _business),
    _rule("three_word_last_first_initial", "3 words, no qualifier, no punctuation, last word single letter",
          lambda s: (_three(s) and _personal(s) and not s.punctuation.has_major_punctuation
                     and s.last_word_is_single_letter()),
          _last_first_other),
    _rule("three_word_middle_initial", "3 words, no qualifier, no punctuation, second word single letter",
          lambda s: (_three(s) and _personal(s) and not s.punctuation.has_major_punctuation
                     and s.second_word_is_single_letter() and not s.last_word_is_single_letter()),
          _first_other_last),
    _rule("three_word_full", "3 words, no qualifier, no punctuation, no single letters",
          lambda s: (_three(s) and _personal(s) and not s.punctuation.has_major_punctuation
                     and not s.second_word_is_single_letter() and not s.last_word_is_single_letter()),
          _first_other_last),
    _rule("three_word_ampersand", "3 words, no qualifier, ampersand only, ampersand is a word",
          lambda s: _three(s) and _personal(s) and s.punctuation.ampersand_only and s.ampersand_is_word(),
          _business),
    _rule("three_word_dual_role", "3 words, no qualifier, slash only, both slash halves are qualifiers",
          lambda s: _three(s) and _personal(s) and s.punctuation.slash_only and s.slash_halves_are_business_terms(),
          _legal),
    _rule("three_word_business", "3 words, qualifier, no punctuation",
          lambda s: _three(s) and _business_name(s) and not s.punctuation.has_major_punctuation,
          _organization),
    _rule("three_word_business_comma", "3 words, qualifier, commas only",
          lambda s: _three(s) and _business_name(s) and s.punctuation.commas_only,
          _without_commas),

    # Four words
    _rule("four_word_shared_last_ampersand", "4 words, no qualifier, ampersand and comma, comma ends the first word",
          lambda s: (_four(s) and _personal(s) and s.punctuation.has_ampersand and s.punctuation.has_commas
                     and s.first_word_ends_with_comma()),
          _four_word_shared_last_ampersand),
    _rule("four_word_repeated_last", "4 words, no qualifier, commas only, first and third words match",
          lambda s: _four(s) and _personal(s) and s.punctuation.commas_only and s.first_and_third_words_match(),
          _four_word_repeated_last),
    _rule("four_word_two_last_names", "4 words, no qualifier, commas only, first and third words differ",
          lambda s: _four(s) and _personal(s) and s.punctuation.commas_only and not s.first_and_third_words_match(),
          _four_word_two_last_names),
    _rule("four_word_ampersand", "4 words, no qualifier, ampersand only",
          lambda s: _four(s) and _personal(s) and s.punctuation.ampersand_only,
          _ampersand_shared_last),
    _rule("four_word_full", "4 words, no qualifier, no punctuation",
          lambda s: _four(s) and _personal(s) and not s.punctuation.has_major_punctuation,
          _full_name_individual),
    _rule("four_word_business", "4 words, qualifier, no punctuation",
          lambda s: _four(s) and _business_name(s) and not s.punctuation.has_major_punctuation,
          _organization),
    _rule("four_word_business_last_first", "4 words, qualifier, commas only, comma in first word, last word qualifier",
          lambda s: (_four(s) and _business_name(s) and s.punctuation.commas_only and "," in s.words[0]
                     and s.is_business_word(s.words[3])),
          _without_commas),
    _rule("four_word_business_multi_comma", "4 words, qualifier, commas only, more than one comma",
          lambda s: (_four(s) and _business_name(s) and s.punctuation.commas_only and s.punctuation.comma_count > 1
                     and not ("," in s.words[0] and s.is_business_word(s.words[3])) and s.words[1] != ","),
          _business),
    _rule("four_word_person_with_role", "4 words, qualifier, commas only, comma before the last qualifier",
          lambda s: (_four(s) and _business_name(s) and s.punctuation.commas_only
                     and s.punctuation.comma_count == 1 and s.words[1] != ","
                     and s.comma_before_last_business_word()),
          _person_with_role),
    _rule("four_word_business_ampersand", "4 words, qualifier, ampersand only, second word is an ampersand",
          lambda s: (_four(s) and _business_name(s) and s.punctuation.ampersand_only
                     and s.second_word_is_ampersand()),
          _business),
    _rule("four_word_business_ampersand_comma", "4 words, qualifier, ampersand and comma",
          lambda s: _four(s) and _business_name(s) and s.punctuation.has_ampersand and s.punctuation.has_commas,
          _organization),
    _rule("four_word_business_slash", "4 words, qualifier, slash",
          lambda s: (_four(s) and _business_name(s) and s.punctuation.has_slash
                     and not (s.punctuation.has_ampersand and s.punctuation.has_commas)),
          _legal),

    # Five or more words
    _rule("multi_word_shared_last", "5+ words, no qualifier, ampersand, the only comma is in the first word",
          lambda s: _many(s) and _personal(s) and s.punctuation.has_ampersand and s.only_comma_in_first_word(),
          _ampersand_shared_last),
    _rule("multi_word_two_last_names", "5+ words, no qualifier, ampersand, commas in first word and after '&'",
          lambda s: (_many(s) and _personal(s) and s.punctuation.has_ampersand
                     and s.commas_in_first_and_after_ampersand()),
          _multi_word_two_last_names),
    _rule("multi_word_repeated_last", "5+ words, no qualifier, commas only, a comma word repeats",
          lambda s: (_many(s) and _personal(s) and s.punctuation.commas_only and s.punctuation.comma_count > 1
                     and s.repeated_comma_word() is not None),
          _multi_word_repeated_last),
    _rule("multi_word_comma_list", "5+ words, no qualifier, commas only, no comma word repeats",
          lambda s: (_many(s) and _personal(s) and s.punctuation.commas_only and s.punctuation.comma_count > 1
                     and s.repeated_comma_word() is None),
          _unparsed_household),
    _rule("multi_word_single_after_ampersand", "5+ words, no qualifier, ampersand only, one word after '&'",
          lambda s: _many(s) and _personal(s) and s.punctuation.ampersand_only and s.one_word_after_ampersand(),
          _ampersand_shared_last),
    _rule("multi_word_unstructured", "5+ words, no qualifier, no specific pattern",
          lambda s: _many(s) and _personal(s) and not _specific_many_word_pattern(s),
          _unparsed_household, fallback=True),
    _rule("multi_word_business", "5+ words, qualifier",
          lambda s: _many(s) and _business_name(s),
          lambda s, c: _organization(s, c, extra_legal_terms=("INC", "CORP"))),

    # Any remaining name
    _rule("fallback_household", "no qualifier, ampersand",
          lambda s: _personal(s) and s.punctuation.has_ampersand,
          _unparsed_household, fallback=True),
    _rule("fallback_individual", "no qualifier, no ampersand",
          lambda s: _personal(s) and not s.punctuation.has_ampersand,
          _full_name_individual, fallback=True),
    _rule("fallback_organization", "qualifier",
          _business_name,
          _organization, fallback=True),
]


def rules_by_id():
    return {rule.rule_id: rule for rule in CASCADE}


def master_list_classification(signature: NameSignature, context: RuleContext) -> Classification:
    """Organization for a name found on the institutional master list."""
    classification = _organization(signature, context)
    classification.rule = MASTER_LIST_RULE
    return classification
