# mypy: ignore-errors
"""Tests for thread, reply and report endpoints."""

from fastapi import status

from board_sentinel.core.settings import settings
from board_sentinel.models import Post, Report
from board_sentinel.models.post import POST_STATUS_DELETED

POSTS_URL = "/api/v1/posts"


def test_create_thread(client, db_session) -> None:
    response = client.post(POSTS_URL, json={"content": "  Hello board  ", "board_slug": "general"})

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["content"] == "Hello board"
    assert data["board_slug"] == "general"
    assert data["parent_id"] is None
    assert data["moderation_status"] == "clean"
    assert data["link_preview"] is None
    assert len(data["content_hash"]) == 64

    stored = db_session.get(Post, data["id"])
    assert stored.author_fingerprint != "testclient"


def test_flagged_thread_is_stored_pending(client) -> None:
    response = client.post(POSTS_URL, json={"content": "I will k1ll you"})

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["moderation_status"] == "pending_review"


def test_relaxed_board_keeps_post_clean(client) -> None:
    response = client.post(POSTS_URL, json={"content": "porn", "board_slug": "nsfw"})
    assert response.json()["moderation_status"] == "clean"


def test_scan_on_submit_can_be_disabled(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "scan_on_submit", False)
    response = client.post(POSTS_URL, json={"content": "I will k1ll you"})
    assert response.json()["moderation_status"] == "unscanned"


def test_unreachable_link_still_posts(client) -> None:
    response = client.post(POSTS_URL, json={"content": "see https://example.com/page"})
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["link_preview"] is None


def test_empty_thread_is_rejected(client) -> None:
    response = client.post(POSTS_URL, json={"content": "   "})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "EMPTY"


def test_rate_limit_and_duplicate_map_to_429(client, clock) -> None:
    assert client.post(POSTS_URL, json={"content": "first"}).status_code == 201

    response = client.post(POSTS_URL, json={"content": "second"})
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert response.json()["detail"] == "RATE_LIMITED"

    clock.advance(5)
    response = client.post(POSTS_URL, json={"content": "first"})
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert response.json()["detail"] == "DUPLICATE_CONTENT"


def test_reply_with_valid_reference(client, make_post) -> None:
    thread = make_post("Thread opener", board_slug="tech")
    make_post("first reply", parent_id=thread.id)
    make_post("second reply", parent_id=thread.id)

    response = client.post(f"{POSTS_URL}/{thread.id}/replies", json={"content": ">>2 agreed"})

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["parent_id"] == thread.id
    assert data["board_slug"] == "tech"


def test_reply_reference_beyond_last_floor(client, make_post) -> None:
    thread = make_post("Thread opener")
    make_post("only reply", parent_id=thread.id)

    response = client.post(f"{POSTS_URL}/{thread.id}/replies", json={"content": ">>2 agreed"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "INVALID_REFERENCE"


def test_reply_without_substance(client, make_post) -> None:
    thread = make_post("Thread opener")
    make_post("only reply", parent_id=thread.id)

    response = client.post(f"{POSTS_URL}/{thread.id}/replies", json={"content": ">>1"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "NO_SUBSTANTIVE_CONTENT"


def test_reply_to_unknown_or_hidden_thread(client, make_post) -> None:
    thread = make_post("Thread opener")
    reply = make_post("a reply", parent_id=thread.id)
    removed = make_post("removed thread", status=POST_STATUS_DELETED)

    for target in (9999, reply.id, removed.id):
        response = client.post(f"{POSTS_URL}/{target}/replies", json={"content": "hello there"})
        assert response.status_code == status.HTTP_404_NOT_FOUND


def test_locked_thread_refuses_replies(client, make_post) -> None:
    thread = make_post("Thread opener", is_locked=True)

    response = client.post(f"{POSTS_URL}/{thread.id}/replies", json={"content": "hello there"})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Thread is locked"


def test_full_thread_is_archived(client, make_post, monkeypatch) -> None:
    monkeypatch.setattr(settings, "max_thread_replies", 2)
    thread = make_post("Thread opener")
    make_post("one", parent_id=thread.id)
    make_post("two", parent_id=thread.id)

    response = client.post(f"{POSTS_URL}/{thread.id}/replies", json={"content": "three"})

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_report_queues_post(client, make_post, db_session) -> None:
    post = make_post("buy my stuff")

    response = client.post(
        f"{POSTS_URL}/{post.id}/report",
        json={"category": "spam", "text": "  advertising  "},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["post_id"] == post.id
    assert data["category"] == "spam"
    assert db_session.query(Report).one().text == "advertising"
    db_session.refresh(post)
    assert post.moderation_status == "pending_review"
    assert post.flagged_by == "user_report"


def test_report_cooldown_then_duplicate(client, make_post, clock) -> None:
    post = make_post()
    url = f"{POSTS_URL}/{post.id}/report"
    assert client.post(url, json={"category": "spam"}).status_code == 200

    response = client.post(url, json={"category": "other"})
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS

    clock.advance(13)
    response = client.post(url, json={"category": "other"})
    assert response.status_code == status.HTTP_409_CONFLICT


def test_report_unknown_post(client) -> None:
    response = client.post(f"{POSTS_URL}/4242/report", json={"category": "spam"})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_report_rejects_unknown_category(client, make_post) -> None:
    post = make_post()
    response = client.post(f"{POSTS_URL}/{post.id}/report", json={"category": "boring"})
    assert response.status_code == 422
