"""Admin endpoints for the classifier's keyword configuration."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from board_sentinel.api.v1.dependencies import AdminDep, KeywordResolverDep, SessionDep
from board_sentinel.schemas.keyword import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    HomophoneCreate,
    ImportResponse,
    KeywordCreate,
    KeywordImport,
    KeywordListResponse,
    KeywordResponse,
    KeywordUpdate,
)
from board_sentinel.services.keyword_config import KeywordStore, KeywordValidationError

router = APIRouter(prefix="/admin/keywords", tags=["keywords"])


def _bad_request(err: KeywordValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err))


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> list[CategoryResponse]:
    summaries = KeywordStore(db, resolver).list_categories()
    return [CategoryResponse.model_validate(summary) for summary in summaries]


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    payload: CategoryCreate,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> CategoryResponse:
    try:
        category = KeywordStore(db, resolver).create_category(
            payload.name,
            payload.weight,
            description=payload.description,
            relaxed_boards=payload.relaxed_boards,
        )
    except KeywordValidationError as err:
        raise _bad_request(err) from err
    return CategoryResponse.model_validate(category)


@router.patch("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> None:
    """Change a category's weight, activity or relaxed boards."""
    try:
        updated = KeywordStore(db, resolver).update_category(
            category_id,
            weight=payload.weight,
            is_active=payload.is_active,
            relaxed_boards=payload.relaxed_boards,
        )
    except KeywordValidationError as err:
        raise _bad_request(err) from err
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")


@router.get("/stats")
async def keyword_stats(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> dict[str, Any]:
    return KeywordStore(db, resolver).stats()


@router.get("", response_model=KeywordListResponse)
async def list_keywords(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
    category_id: int | None = Query(None),
    search: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> KeywordListResponse:
    items, total = KeywordStore(db, resolver).list_keywords(
        category_id=category_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return KeywordListResponse(
        items=[KeywordResponse.model_validate(item) for item in items],
        total=total,
    )


@router.post("", response_model=KeywordResponse, status_code=status.HTTP_201_CREATED)
async def create_keyword(
    payload: KeywordCreate,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> KeywordResponse:
    """Add a literal term or a regex pattern to a category."""
    try:
        keyword = KeywordStore(db, resolver).create_keyword(
            payload.category_id,
            term=payload.term,
            pattern=payload.pattern,
            created_by=admin,
        )
    except KeywordValidationError as err:
        raise _bad_request(err) from err
    return KeywordResponse.model_validate(keyword)


@router.patch("/{keyword_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_keyword(
    keyword_id: int,
    payload: KeywordUpdate,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> None:
    try:
        updated = KeywordStore(db, resolver).update_keyword(
            keyword_id,
            term=payload.term,
            pattern=payload.pattern,
            is_active=payload.is_active,
        )
    except KeywordValidationError as err:
        raise _bad_request(err) from err
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keyword not found")


@router.delete("/{keyword_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_keyword(
    keyword_id: int,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> None:
    if not KeywordStore(db, resolver).delete_keyword(keyword_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keyword not found")


@router.post("/homophones", status_code=status.HTTP_201_CREATED)
async def add_homophone(
    payload: HomophoneCreate,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> dict[str, str]:
    try:
        added = KeywordStore(db, resolver).add_homophone(payload.canonical, payload.variant)
    except KeywordValidationError as err:
        raise _bad_request(err) from err
    if not added:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Homophone already exists")
    return {"canonical": payload.canonical, "variant": payload.variant}


@router.post("/import", response_model=ImportResponse)
async def import_keywords(
    payload: KeywordImport,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ImportResponse:
    """Bulk-load a snapshot-shaped configuration into the store."""
    result = KeywordStore(db, resolver).import_config(payload.model_dump(), created_by=admin)
    return ImportResponse(imported=result.imported, errors=result.errors)
