"""Keyword and pattern based content classification.

Everything in this module is pure: the typed classifier configuration, the
text normalizer and the scorer. Loading and caching the configuration lives
in :mod:`board_sentinel.services.keyword_config`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

logger = logging.getLogger(__name__)

# Characters commonly inserted between letters to dodge substring matching.
SEPARATOR_PATTERN = re.compile(r"[\s*.\-_+=|~`!@#$%^&()]")

# Wraps every canonical token in normalized text.
TOKEN_MARK = "\x00"
MAX_HOMOPHONE_EXPANSION = 4
CATEGORY_BONUS_STEP = 0.1
CATEGORY_BONUS_CAP = 0.3


@dataclass(frozen=True)
class CategoryRule:
    """Compiled matching rules for one category."""

    name: str
    weight: float
    # (term as configured, normalized term)
    terms: tuple[tuple[str, str], ...] = ()
    patterns: tuple[re.Pattern[str], ...] = ()
    relaxed_boards: frozenset[str] = frozenset()


@dataclass(frozen=True)
class KeywordConfig:
    """Typed classifier configuration: weighted categories plus homophones."""

    categories: tuple[CategoryRule, ...] = ()
    homophones: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.categories

    @classmethod
    def build(
        cls,
        categories: Mapping[str, Mapping[str, Any]],
        homophones: Mapping[str, Iterable[str]] | None = None,
    ) -> KeywordConfig:
        """Compile a raw ``{name: {weight, terms, patterns, relaxed_boards}}`` mapping.

        Invalid regex patterns are logged and skipped so that one bad rule never
        disables the rest of the configuration.
        """
        prepared = prepare_homophones(homophones or {})
        rules: list[CategoryRule] = []
        for name, raw in categories.items():
            weight = min(max(float(raw.get("weight", 0.0)), 0.0), 1.0)
            terms: list[tuple[str, str]] = []
            for term in raw.get("terms") or ():
                normalized = normalize_text(term, prepared)
                if normalized:
                    terms.append((term, normalized))
            patterns: list[re.Pattern[str]] = []
            for pattern in raw.get("patterns") or ():
                compiled = compile_pattern(pattern, category=name)
                if compiled is not None:
                    patterns.append(compiled)
            rules.append(
                CategoryRule(
                    name=name,
                    weight=weight,
                    terms=tuple(terms),
                    patterns=tuple(patterns),
                    relaxed_boards=frozenset(raw.get("relaxed_boards") or ()),
                )
            )
        return cls(categories=tuple(rules), homophones=prepared)


@dataclass
class ContentCheckResult:
    """Verdict returned by :func:`classify`."""

    flagged: bool
    score: float
    categories: list[str] = field(default_factory=list)
    matched_terms: list[str] = field(default_factory=list)


def compile_pattern(pattern: str, *, category: str = "?") -> re.Pattern[str] | None:
    """Compile a case-insensitive rule pattern, returning None when malformed."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("Skipping invalid pattern %r in category %s: %s", pattern, category, exc)
        return None


def _token(value: str) -> str:
    return SEPARATOR_PATTERN.sub("", value.lower()).replace(TOKEN_MARK, "")


def homophone_conflict(
    canonical: str,
    variant: str,
    existing: Mapping[str, Iterable[str]] | None = None,
) -> str | None:
    """Explain why ``variant`` cannot map onto ``canonical``, or return None.

    ``existing`` is the rest of the homophone map. A variant may not occur
    inside any canonical token, and its canonical may be at most
    :data:`MAX_HOMOPHONE_EXPANSION` times longer than it.
    """
    canonical_token = _token(canonical)
    variant_token = _token(variant)
    if not canonical_token or not variant_token:
        return "canonical and variant must contain letters or digits"
    if len(canonical_token) > MAX_HOMOPHONE_EXPANSION * len(variant_token):
        return f"variant {variant!r} is too short for canonical {canonical!r}"
    existing = existing or {}
    canonicals = {canonical_token, *(_token(key) for key in existing)}
    for other in canonicals:
        if other and variant_token in other:
            return f"variant {variant!r} occurs inside canonical token {other!r}"
    for other_variants in existing.values():
        for other in other_variants:
            other_token = _token(other)
            if other_token and other_token in canonical_token:
                return f"existing variant {other!r} occurs inside canonical {canonical!r}"
    return None


def prepare_homophones(raw: Mapping[str, Iterable[str]]) -> dict[str, tuple[str, ...]]:
    """Lowercase the homophone map and order each variant list longest first.

    Canonical tokens and variants lose their separator characters so they line
    up with normalized text. Variants that :func:`homophone_conflict` would
    refuse are dropped with a warning.
    """
    canonical_tokens = {_token(canonical) for canonical in raw} - {""}
    prepared: dict[str, tuple[str, ...]] = {}
    for canonical, variants in raw.items():
        canonical_token = _token(canonical)
        if not canonical_token:
            continue
        kept: set[str] = set()
        for variant in variants:
            variant_token = _token(variant or "")
            if not variant_token:
                continue
            if len(canonical_token) > MAX_HOMOPHONE_EXPANSION * len(variant_token) or any(
                variant_token in token for token in canonical_tokens
            ):
                logger.warning("Dropping homophone %r -> %r", variant, canonical)
                continue
            kept.add(variant_token)
        if kept:
            prepared[canonical_token] = tuple(sorted(kept, key=len, reverse=True))
    return prepared


@lru_cache(maxsize=32)
def _compile_homophones(
    items: tuple[tuple[str, tuple[str, ...]], ...],
) -> tuple[re.Pattern[str], re.Pattern[str], dict[str, str]]:
    lookup: dict[str, str] = {}
    for canonical, variants in items:
        lookup.setdefault(canonical, canonical)
        for variant in variants:
            lookup.setdefault(variant, canonical)
    marked = "|".join(re.escape(c) for c, _ in sorted(items, key=lambda i: len(i[0]), reverse=True))
    region = f"{TOKEN_MARK}(?:{marked}){TOKEN_MARK}"
    tokens = "|".join(re.escape(token) for token in sorted(lookup, key=len, reverse=True))
    stray_marks = re.compile(f"({region})|{TOKEN_MARK}")
    token_pattern = re.compile(f"({region})|({tokens})")
    return stray_marks, token_pattern, lookup


def normalize_text(text: str, homophones: Mapping[str, tuple[str, ...]] | None = None) -> str:
    """Canonicalize text before matching.

    Lowercases, strips separator characters and then maps homophone variants
    (and the canonical tokens themselves) onto ``TOKEN_MARK + canonical +
    TOKEN_MARK`` in a single left-to-right pass, longest token first. Marked
    regions are never rescanned, so the result is stable under a second
    application for any homophone map and grows by a bounded factor.
    """
    normalized = SEPARATOR_PATTERN.sub("", text.lower())
    if not homophones:
        return normalized.replace(TOKEN_MARK, "")
    stray_marks, token_pattern, lookup = _compile_homophones(
        tuple((canonical, tuple(variants)) for canonical, variants in homophones.items())
    )
    normalized = stray_marks.sub(lambda m: m.group(1) or "", normalized)
    return token_pattern.sub(
        lambda m: m.group(1) or f"{TOKEN_MARK}{lookup[m.group(2)]}{TOKEN_MARK}", normalized
    )


def score_categories(weights: Iterable[float]) -> float:
    """Combine matched category weights into a single 0..1 score."""
    values = list(weights)
    if not values:
        return 0.0
    bonus = min(CATEGORY_BONUS_STEP * len(values), CATEGORY_BONUS_CAP)
    return min(max(values) + bonus, 1.0)


def _match_rule(rule: CategoryRule, raw_text: str, normalized: str) -> list[str]:
    hits: list[str] = []
    for term, normalized_term in rule.terms:
        if normalized_term in normalized:
            hits.append(term)
    for pattern in rule.patterns:
        if pattern.search(raw_text) or pattern.search(normalized):
            hits.append(f"[pattern: {pattern.pattern}]")
    return hits


def _active_rules(config: KeywordConfig, board_slug: str | None) -> list[CategoryRule]:
    if not board_slug:
        return list(config.categories)
    return [rule for rule in config.categories if board_slug not in rule.relaxed_boards]


def classify(
    text: str,
    config: KeywordConfig,
    board_slug: str | None = None,
) -> ContentCheckResult:
    """Score ``text`` against every active category.

    Categories relaxed for ``board_slug`` are removed before scoring. Each
    category contributes at most once, while every matched term or pattern is
    kept for admin review.
    """
    normalized = normalize_text(text, config.homophones)
    categories: list[str] = []
    matched_terms: list[str] = []
    weights: list[float] = []

    for rule in _active_rules(config, board_slug):
        hits = _match_rule(rule, text, normalized)
        if not hits:
            continue
        categories.append(rule.name)
        weights.append(rule.weight)
        for hit in hits:
            if hit not in matched_terms:
                matched_terms.append(hit)

    if not categories:
        return ContentCheckResult(flagged=False, score=0.0)

    return ContentCheckResult(
        flagged=True,
        score=score_categories(weights),
        categories=categories,
        matched_terms=matched_terms,
    )


def quick_check(text: str, config: KeywordConfig, board_slug: str | None = None) -> bool:
    """Return True as soon as any rule matches, without scoring."""
    normalized = normalize_text(text, config.homophones)
    return any(_match_rule(rule, text, normalized) for rule in _active_rules(config, board_slug))
