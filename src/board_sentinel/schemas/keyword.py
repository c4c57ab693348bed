# src/board_sentinel/schemas/keyword.py
"""Schemas for keyword administration."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    weight: float = Field(..., ge=0.0, le=1.0)
    description: str | None = None
    relaxed_boards: list[str] = Field(default_factory=list)


class CategoryUpdate(BaseModel):
    weight: float | None = Field(None, ge=0.0, le=1.0)
    is_active: bool | None = None
    relaxed_boards: list[str] | None = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: str | None
    weight: float
    is_active: bool
    relaxed_boards: list[str]
    term_count: int = 0
    pattern_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class KeywordCreate(BaseModel):
    """Exactly one of ``term`` and ``pattern`` must be given."""

    category_id: int
    term: str | None = Field(None, max_length=200)
    pattern: str | None = Field(None, max_length=500)


class KeywordUpdate(BaseModel):
    term: str | None = Field(None, max_length=200)
    pattern: str | None = Field(None, max_length=500)
    is_active: bool | None = None


class KeywordResponse(BaseModel):
    id: int
    category_id: int
    term: str | None
    pattern: str | None
    is_active: bool
    created_at: datetime
    created_by: str | None

    model_config = ConfigDict(from_attributes=True)


class KeywordListResponse(BaseModel):
    items: list[KeywordResponse]
    total: int


class HomophoneCreate(BaseModel):
    canonical: str = Field(..., min_length=1, max_length=128)
    variant: str = Field(..., min_length=1, max_length=128)


class KeywordImport(BaseModel):
    """Snapshot-shaped payload: ``{"categories": {...}, "homophone_map": {...}}``."""

    categories: dict[str, dict[str, Any]] = Field(default_factory=dict)
    homophone_map: dict[str, list[str]] = Field(default_factory=dict)


class ImportResponse(BaseModel):
    imported: int
    errors: int
