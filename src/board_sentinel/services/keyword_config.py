"""Classifier configuration: sources, cached resolver and the single write path.

Configuration is read from the row store through :class:`DatabaseConfigSource`
and cached for a short TTL. When the store is unreachable or empty the bundled
snapshot (``data/keywords.json``) is used instead, so classification never
fails because of configuration. All mutations go through
:class:`KeywordStore`, which invalidates the cache after every commit.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from board_sentinel.core.settings import settings
from board_sentinel.db.session import SessionLocal
from board_sentinel.models import Homophone, Keyword, KeywordCategory
from board_sentinel.services.content_filter import (
    KeywordConfig,
    compile_pattern,
    homophone_conflict,
)

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = Path(__file__).resolve().parents[1] / "data" / "keywords.json"


class KeywordValidationError(ValueError):
    """Raised when a keyword mutation is malformed."""


class KeywordConfigSource(Protocol):
    """Anything able to produce a :class:`KeywordConfig`."""

    def load(self) -> KeywordConfig: ...


def config_from_mapping(raw: Mapping[str, Any]) -> KeywordConfig:
    """Build a config from the snapshot shape ``{categories, homophone_map}``."""
    return KeywordConfig.build(
        raw.get("categories") or {},
        raw.get("homophone_map") or {},
    )


class StaticConfigSource:
    """Configuration bundled with the package."""

    def __init__(self, path: Path = DEFAULT_SNAPSHOT_PATH) -> None:
        self.path = path
        self._config: KeywordConfig | None = None

    def load(self) -> KeywordConfig:
        if self._config is None:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._config = config_from_mapping(raw)
        return self._config


class DatabaseConfigSource:
    """Configuration stored in the ``keyword_*`` tables."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def load(self) -> KeywordConfig:
        with self._session_factory() as db:
            return KeywordConfig.build(*read_store_mapping(db))


def read_store_mapping(
    db: Session,
) -> tuple[dict[str, dict[str, Any]], dict[str, list[str]]]:
    """Read active categories, keywords and homophones as plain mappings."""
    categories: dict[str, dict[str, Any]] = {}
    names_by_id: dict[int, str] = {}
    for category in db.query(KeywordCategory).filter(KeywordCategory.is_active.is_(True)):
        names_by_id[category.id] = category.name
        categories[category.name] = {
            "weight": category.weight,
            "terms": [],
            "patterns": [],
            "relaxed_boards": list(category.relaxed_boards or []),
        }

    keywords = db.query(Keyword).filter(
        Keyword.is_active.is_(True),
        Keyword.category_id.in_(list(names_by_id) or [-1]),
    )
    for keyword in keywords:
        entry = categories[names_by_id[keyword.category_id]]
        if keyword.term:
            entry["terms"].append(keyword.term)
        if keyword.pattern:
            entry["patterns"].append(keyword.pattern)

    homophones: dict[str, list[str]] = {}
    for canonical, variant in db.query(Homophone.canonical, Homophone.variant):
        homophones.setdefault(canonical, []).append(variant)

    return categories, homophones


class KeywordConfigResolver:
    """Short-lived cache in front of a primary source with a static fallback."""

    def __init__(
        self,
        primary: KeywordConfigSource,
        fallback: KeywordConfigSource,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._ttl = ttl_seconds
        self._clock = clock
        self._cached: KeywordConfig | None = None
        self._cached_at = 0.0

    def get(self) -> KeywordConfig:
        """Return the active configuration, reloading once the TTL expires."""
        now = self._clock()
        cached = self._cached
        if cached is not None and now - self._cached_at < self._ttl:
            return cached
        config = self._load()
        self._cached = config
        self._cached_at = now
        return config

    def invalidate(self) -> None:
        """Drop the cached configuration so the next read hits the store."""
        self._cached = None
        self._cached_at = 0.0

    def _load(self) -> KeywordConfig:
        try:
            config = self._primary.load()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Keyword store unavailable, using static snapshot: %s", exc)
            return self._fallback.load()
        if config.is_empty:
            logger.info("Keyword store is empty, using static snapshot")
            return self._fallback.load()
        return config


_resolver: KeywordConfigResolver | None = None


def get_keyword_resolver() -> KeywordConfigResolver:
    """Return the process-wide keyword configuration resolver."""
    global _resolver
    if _resolver is None:
        _resolver = KeywordConfigResolver(
            DatabaseConfigSource(SessionLocal),
            StaticConfigSource(),
            ttl_seconds=settings.keyword_cache_ttl_seconds,
        )
    return _resolver


@dataclass
class CategorySummary:
    id: int
    name: str
    description: str | None
    weight: float
    is_active: bool
    relaxed_boards: list[str]
    term_count: int
    pattern_count: int


@dataclass
class ImportResult:
    imported: int
    errors: int


class KeywordStore:
    """CRUD over classifier configuration.

    Every successful mutation commits and then invalidates the resolver, so
    no write can leave a stale cache behind.
    """

    def __init__(self, db: Session, resolver: KeywordConfigResolver | None = None) -> None:
        self.db = db
        self.resolver = resolver or get_keyword_resolver()

    def _commit(self) -> None:
        self.db.commit()
        self.resolver.invalidate()

    # --- Categories ----------------------------------------------------------------
    def list_categories(self) -> list[CategorySummary]:
        """Return all categories with their active term/pattern counts."""
        term_counts = dict(
            self.db.query(Keyword.category_id, func.count(Keyword.id))
            .filter(Keyword.is_active.is_(True), Keyword.term.isnot(None))
            .group_by(Keyword.category_id)
            .all()
        )
        pattern_counts = dict(
            self.db.query(Keyword.category_id, func.count(Keyword.id))
            .filter(Keyword.is_active.is_(True), Keyword.pattern.isnot(None))
            .group_by(Keyword.category_id)
            .all()
        )
        return [
            CategorySummary(
                id=category.id,
                name=category.name,
                description=category.description,
                weight=category.weight,
                is_active=category.is_active,
                relaxed_boards=list(category.relaxed_boards or []),
                term_count=int(term_counts.get(category.id, 0)),
                pattern_count=int(pattern_counts.get(category.id, 0)),
            )
            for category in self.db.query(KeywordCategory).order_by(KeywordCategory.name)
        ]

    def get_category(self, category_id: int) -> KeywordCategory | None:
        return self.db.get(KeywordCategory, category_id)

    def create_category(
        self,
        name: str,
        weight: float,
        *,
        description: str | None = None,
        relaxed_boards: Iterable[str] = (),
    ) -> KeywordCategory:
        """Create a category; names are unique."""
        name = name.strip()
        if not name:
            raise KeywordValidationError("category name is required")
        _validate_weight(weight)
        category = KeywordCategory(
            name=name,
            weight=weight,
            description=description,
            relaxed_boards=list(relaxed_boards),
        )
        self.db.add(category)
        try:
            self._commit()
        except IntegrityError as err:
            self.db.rollback()
            raise KeywordValidationError(f"category {name!r} already exists") from err
        self.db.refresh(category)
        return category

    def update_category(
        self,
        category_id: int,
        *,
        weight: float | None = None,
        is_active: bool | None = None,
        relaxed_boards: Iterable[str] | None = None,
    ) -> bool:
        """Update a category's weight, activity or board overrides."""
        category = self.get_category(category_id)
        if category is None:
            return False
        if weight is not None:
            _validate_weight(weight)
            category.weight = weight
        if is_active is not None:
            category.is_active = is_active
        if relaxed_boards is not None:
            category.relaxed_boards = list(relaxed_boards)
        self._commit()
        return True

    # --- Keywords ------------------------------------------------------------------
    def list_keywords(
        self,
        *,
        category_id: int | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Keyword], int]:
        """Return a page of keywords and the total matching count."""
        query = self.db.query(Keyword)
        if category_id is not None:
            query = query.filter(Keyword.category_id == category_id)
        if search:
            like = f"%{search}%"
            query = query.filter(Keyword.term.ilike(like) | Keyword.pattern.ilike(like))
        total = query.count()
        items = (
            query.order_by(Keyword.created_at.desc(), Keyword.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def create_keyword(
        self,
        category_id: int,
        *,
        term: str | None = None,
        pattern: str | None = None,
        created_by: str | None = None,
    ) -> Keyword:
        """Add a literal term or a regex pattern (exactly one) to a category."""
        if bool(term) == bool(pattern):
            raise KeywordValidationError("exactly one of term or pattern is required")
        if pattern and compile_pattern(pattern) is None:
            raise KeywordValidationError("invalid regular expression")
        if self.get_category(category_id) is None:
            raise KeywordValidationError("unknown category")

        keyword = Keyword(
            category_id=category_id,
            term=term or None,
            pattern=pattern or None,
            created_by=created_by,
        )
        self.db.add(keyword)
        self._commit()
        self.db.refresh(keyword)
        return keyword

    def update_keyword(
        self,
        keyword_id: int,
        *,
        term: str | None = None,
        pattern: str | None = None,
        is_active: bool | None = None,
    ) -> bool:
        """Update a keyword in place."""
        if term is None and pattern is None and is_active is None:
            raise KeywordValidationError("nothing to update")
        if pattern and compile_pattern(pattern) is None:
            raise KeywordValidationError("invalid regular expression")

        keyword = self.db.get(Keyword, keyword_id)
        if keyword is None:
            return False
        if term is not None:
            keyword.term = term or None
        if pattern is not None:
            keyword.pattern = pattern or None
        if is_active is not None:
            keyword.is_active = is_active
        if bool(keyword.term) == bool(keyword.pattern):
            self.db.rollback()
            raise KeywordValidationError("exactly one of term or pattern is required")
        self._commit()
        return True

    def delete_keyword(self, keyword_id: int) -> bool:
        keyword = self.db.get(Keyword, keyword_id)
        if keyword is None:
            return False
        self.db.delete(keyword)
        self._commit()
        return True

    # --- Homophones ----------------------------------------------------------------
    def add_homophone(self, canonical: str, variant: str) -> bool:
        """Map ``variant`` onto ``canonical``; returns False for duplicates."""
        if not canonical.strip() or not variant.strip():
            raise KeywordValidationError("canonical and variant are required")
        existing: dict[str, list[str]] = {}
        for row in self.db.query(Homophone):
            existing.setdefault(row.canonical, []).append(row.variant)
        conflict = homophone_conflict(canonical, variant, existing)
        if conflict:
            raise KeywordValidationError(conflict)
        self.db.add(Homophone(canonical=canonical.strip(), variant=variant))
        try:
            self._commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    # --- Bulk ----------------------------------------------------------------------
    def import_config(self, raw: Mapping[str, Any], created_by: str | None = None) -> ImportResult:
        """Import a snapshot-shaped mapping into the store.

        Unknown categories are created with the snapshot's weight. Invalid
        entries are counted as errors and skipped.
        """
        imported = 0
        errors = 0
        existing = {category.name: category for category in self.db.query(KeywordCategory)}

        for name, entry in (raw.get("categories") or {}).items():
            category = existing.get(name)
            if category is None:
                try:
                    category = self.create_category(
                        name,
                        float(entry.get("weight", 0.5)),
                        description=entry.get("description"),
                        relaxed_boards=entry.get("relaxed_boards") or (),
                    )
                except (KeywordValidationError, TypeError, ValueError) as exc:
                    logger.warning("Skipping category %s during import: %s", name, exc)
                    errors += 1
                    continue
            for term in entry.get("terms") or ():
                imported, errors = self._import_one(
                    category.id, imported, errors, term=term, created_by=created_by
                )
            for pattern in entry.get("patterns") or ():
                imported, errors = self._import_one(
                    category.id, imported, errors, pattern=pattern, created_by=created_by
                )

        for canonical, variants in (raw.get("homophone_map") or {}).items():
            for variant in variants:
                try:
                    self.add_homophone(canonical, variant)
                except KeywordValidationError:
                    errors += 1

        self.resolver.invalidate()
        return ImportResult(imported=imported, errors=errors)

    def _import_one(
        self, category_id: int, imported: int, errors: int, **fields: Any
    ) -> tuple[int, int]:
        try:
            self.create_keyword(category_id, **fields)
        except KeywordValidationError as exc:
            logger.warning("Skipping keyword during import: %s", exc)
            return imported, errors + 1
        return imported + 1, errors

    def stats(self) -> dict[str, Any]:
        """Return totals for the admin dashboard."""
        by_category = [
            {"name": summary.name, "terms": summary.term_count, "patterns": summary.pattern_count}
            for summary in self.list_categories()
            if summary.is_active
        ]
        return {
            "total_terms": sum(item["terms"] for item in by_category),
            "total_patterns": sum(item["patterns"] for item in by_category),
            "total_homophones": self.db.query(func.count(Homophone.id)).scalar() or 0,
            "by_category": by_category,
        }


def _validate_weight(weight: float) -> None:
    if not 0.0 <= weight <= 1.0:
        raise KeywordValidationError("weight must be between 0.0 and 1.0")
