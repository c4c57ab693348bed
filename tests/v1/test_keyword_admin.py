# mypy: ignore-errors
"""Tests for keyword administration endpoints."""

from fastapi import status

from board_sentinel.core.security import fingerprint_for
from board_sentinel.core.settings import settings
from board_sentinel.models import Keyword, KeywordCategory

KEYWORDS_URL = "/api/v1/admin/keywords"


def _create_category(client, headers, name: str = "custom", weight: float = 0.5) -> int:
    response = client.post(
        f"{KEYWORDS_URL}/categories",
        json={"name": name, "weight": weight, "relaxed_boards": ["fun"]},
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def test_keyword_admin_requires_token(client, admin_headers) -> None:
    assert client.get(f"{KEYWORDS_URL}/categories").status_code == 403


def test_category_lifecycle(client, admin_headers, db_session) -> None:
    assert client.get(f"{KEYWORDS_URL}/categories", headers=admin_headers).json() == []

    category_id = _create_category(client, admin_headers)

    duplicate = client.post(
        f"{KEYWORDS_URL}/categories",
        json={"name": "custom", "weight": 0.2},
        headers=admin_headers,
    )
    assert duplicate.status_code == status.HTTP_400_BAD_REQUEST

    response = client.patch(
        f"{KEYWORDS_URL}/categories/{category_id}",
        json={"weight": 0.8, "is_active": False},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_204_NO_CONTENT
    category = db_session.get(KeywordCategory, category_id)
    db_session.refresh(category)
    assert category.weight == 0.8
    assert category.is_active is False

    missing = client.patch(
        f"{KEYWORDS_URL}/categories/999", json={"weight": 0.1}, headers=admin_headers
    )
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_category_weight_is_validated(client, admin_headers) -> None:
    response = client.post(
        f"{KEYWORDS_URL}/categories",
        json={"name": "heavy", "weight": 1.5},
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_keyword_lifecycle(client, admin_headers) -> None:
    category_id = _create_category(client, admin_headers)

    created = client.post(
        KEYWORDS_URL,
        json={"category_id": category_id, "term": "flibber"},
        headers=admin_headers,
    )
    assert created.status_code == status.HTTP_201_CREATED
    keyword = created.json()
    assert keyword["term"] == "flibber"
    assert keyword["pattern"] is None
    assert keyword["created_by"] == fingerprint_for("testclient", settings.app_secret)

    listing = client.get(KEYWORDS_URL, params={"search": "flib"}, headers=admin_headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == keyword["id"]

    patched = client.patch(
        f"{KEYWORDS_URL}/{keyword['id']}", json={"is_active": False}, headers=admin_headers
    )
    assert patched.status_code == status.HTTP_204_NO_CONTENT

    deleted = client.delete(f"{KEYWORDS_URL}/{keyword['id']}", headers=admin_headers)
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    again = client.delete(f"{KEYWORDS_URL}/{keyword['id']}", headers=admin_headers)
    assert again.status_code == status.HTTP_404_NOT_FOUND


def test_keyword_validation_errors(client, admin_headers) -> None:
    category_id = _create_category(client, admin_headers)

    for body in (
        {"category_id": category_id},
        {"category_id": category_id, "term": "a", "pattern": "b"},
        {"category_id": category_id, "pattern": "(unclosed"},
        {"category_id": 999, "term": "orphan"},
    ):
        response = client.post(KEYWORDS_URL, json=body, headers=admin_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    missing = client.patch(f"{KEYWORDS_URL}/999", json={"term": "x"}, headers=admin_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_homophones(client, admin_headers) -> None:
    body = {"canonical": "kill", "variant": "k1ll"}
    first = client.post(f"{KEYWORDS_URL}/homophones", json=body, headers=admin_headers)
    assert first.status_code == status.HTTP_201_CREATED
    second = client.post(f"{KEYWORDS_URL}/homophones", json=body, headers=admin_headers)
    assert second.status_code == status.HTTP_409_CONFLICT

    overlapping = client.post(
        f"{KEYWORDS_URL}/homophones",
        json={"canonical": "skill", "variant": "ill"},
        headers=admin_headers,
    )
    assert overlapping.status_code == status.HTTP_400_BAD_REQUEST


def test_import_and_stats(client, admin_headers, db_session) -> None:
    payload = {
        "categories": {
            "spam": {"weight": 0.6, "terms": ["buy followers"], "patterns": [r"buy\s+now"]},
            "nsfw": {"weight": 0.5, "terms": ["porn"], "relaxed_boards": ["nsfw"]},
        },
        "homophone_map": {"porn": ["p0rn"]},
    }

    response = client.post(f"{KEYWORDS_URL}/import", json=payload, headers=admin_headers)

    assert response.json() == {"imported": 3, "errors": 0}
    assert db_session.query(Keyword).count() == 3

    stats = client.get(f"{KEYWORDS_URL}/stats", headers=admin_headers).json()
    assert stats["total_terms"] == 2
    assert stats["total_patterns"] == 1
    assert stats["total_homophones"] == 1

    categories = client.get(f"{KEYWORDS_URL}/categories", headers=admin_headers).json()
    by_name = {category["name"]: category for category in categories}
    assert by_name["spam"]["pattern_count"] == 1
    assert by_name["nsfw"]["relaxed_boards"] == ["nsfw"]
