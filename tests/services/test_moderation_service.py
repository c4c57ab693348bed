# mypy: ignore-errors
"""Tests for the moderation workflow service."""

import pytest

from board_sentinel.models import ModerationLog, Post, Report
from board_sentinel.models.moderation import (
    FLAG_SOURCE_SYSTEM_SCAN,
    FLAG_SOURCE_USER_REPORT,
    ImmutableLogError,
)
from board_sentinel.models.post import POST_STATUS_DELETED
from board_sentinel.services.moderation import (
    AlreadyReportedError,
    ModerationService,
    PostNotFoundError,
)


@pytest.fixture
def service(db_session, static_resolver) -> ModerationService:
    return ModerationService(db_session, static_resolver)


def test_scan_unscanned_classifies_posts(service, make_post, db_session) -> None:
    clean = make_post("Lovely weather for a picnic")
    dirty = make_post("I will k1ll you")
    relaxed = make_post("p0rn links inside", board_slug="nsfw")

    result = service.scan_unscanned()

    assert (result.scanned, result.flagged, result.clean, result.errors) == (3, 1, 2, 0)
    for post in (clean, dirty, relaxed):
        db_session.refresh(post)
    assert clean.moderation_status == "clean"
    assert clean.moderation_score == 0.0
    assert relaxed.moderation_status == "clean"
    assert dirty.moderation_status == "pending_review"
    assert dirty.flagged_by == FLAG_SOURCE_SYSTEM_SCAN
    assert "violence" in dirty.flagged_categories
    assert dirty.flagged_at is not None
    assert dirty.moderation_score == pytest.approx(1.0)


def test_scan_unscanned_respects_limit_newest_first(service, make_post, db_session) -> None:
    older = make_post("first post here")
    newer = make_post("second post here")

    result = service.scan_unscanned(limit=1)

    assert result.scanned == 1
    db_session.refresh(older)
    db_session.refresh(newer)
    assert newer.moderation_status == "clean"
    assert older.moderation_status == "unscanned"


def test_scan_unscanned_isolates_failures(make_post, db_session, keyword_config, mocker) -> None:
    make_post("first post here")
    make_post("second post here")
    resolver = mocker.MagicMock()
    resolver.get.side_effect = [RuntimeError("boom"), keyword_config]

    result = ModerationService(db_session, resolver).scan_unscanned()

    assert result.errors == 1
    assert result.scanned == 1
    statuses = sorted(post.moderation_status for post in db_session.query(Post))
    assert statuses == ["clean", "unscanned"]


def test_flag_post_keeps_max_score_and_unions_categories(service, make_post, db_session) -> None:
    post = make_post()

    assert service.flag_post(post.id, 0.7, ["spam"], FLAG_SOURCE_SYSTEM_SCAN) is True
    first_flagged_at = db_session.get(Post, post.id).flagged_at
    assert service.flag_post(post.id, 0.5, ["nsfw", "spam"], FLAG_SOURCE_USER_REPORT) is True

    db_session.refresh(post)
    assert post.moderation_status == "pending_review"
    assert post.moderation_score == pytest.approx(0.7)
    assert sorted(post.flagged_categories) == ["nsfw", "spam"]
    assert post.flagged_by == FLAG_SOURCE_SYSTEM_SCAN
    assert post.flagged_at == first_flagged_at

    service.flag_post(post.id, 0.9, ["violence"], FLAG_SOURCE_USER_REPORT)
    db_session.refresh(post)
    assert post.moderation_score == pytest.approx(0.9)


def test_flag_post_missing_or_rejected(service, make_post) -> None:
    assert service.flag_post(424242, 0.5, ["spam"], FLAG_SOURCE_USER_REPORT) is False
    post = make_post(moderation_status="rejected", status=POST_STATUS_DELETED)
    assert service.flag_post(post.id, 0.5, ["spam"], FLAG_SOURCE_USER_REPORT) is False


def test_flag_post_reopens_approved_post(service, make_post, db_session) -> None:
    post = make_post(moderation_status="approved")
    assert service.flag_post(post.id, 0.5, ["spam"], FLAG_SOURCE_USER_REPORT) is True
    db_session.refresh(post)
    assert post.moderation_status == "pending_review"


def test_queue_ordering_and_report_counts(service, make_post) -> None:
    low = make_post("low")
    high = make_post("high")
    unscored = make_post("unscored", moderation_status="pending_review")
    make_post("clean one", moderation_status="clean")
    service.flag_post(low.id, 0.3, ["spam"], FLAG_SOURCE_SYSTEM_SCAN)
    service.flag_post(high.id, 0.9, ["violence"], FLAG_SOURCE_SYSTEM_SCAN)
    service.create_report(low.id, "reader-1", "spam")
    service.create_report(low.id, "reader-2", "other")

    queue = service.get_queue()

    assert [item.id for item in queue] == [high.id, low.id, unscored.id]
    assert queue[1].report_count == 2
    assert queue[0].report_count == 0
    assert service.get_queue_count() == 3
    assert [item.id for item in service.get_queue(limit=1, offset=1)] == [low.id]


def test_approve_only_from_pending(service, make_post, db_session) -> None:
    post = make_post()
    assert service.approve(post.id, "admin-fp") is False

    service.flag_post(post.id, 0.6, ["spam"], FLAG_SOURCE_SYSTEM_SCAN)
    assert service.approve(post.id, "admin-fp") is True
    assert service.approve(post.id, "admin-fp") is False

    db_session.refresh(post)
    assert post.moderation_status == "approved"
    assert post.status == 0
    log = db_session.query(ModerationLog).one()
    assert (log.action, log.target_id, log.admin_fingerprint) == ("approve", str(post.id), "admin-fp")


def test_reject_soft_deletes_and_logs_reason(service, make_post, db_session) -> None:
    post = make_post()
    service.flag_post(post.id, 0.6, ["spam"], FLAG_SOURCE_SYSTEM_SCAN)

    assert service.reject(post.id, "admin-fp", "spam flood") is True
    assert service.reject(post.id, "admin-fp", "again") is False

    db_session.refresh(post)
    assert post.moderation_status == "rejected"
    assert post.status == POST_STATUS_DELETED
    log = db_session.query(ModerationLog).one()
    assert log.action == "reject"
    assert log.reason == "spam flood"


def test_approve_and_reject_race_has_one_winner(service, make_post, db_session) -> None:
    post = make_post()
    service.flag_post(post.id, 0.6, ["spam"], FLAG_SOURCE_SYSTEM_SCAN)

    outcomes = [service.approve(post.id, "admin-a"), service.reject(post.id, "admin-b", "no")]

    assert outcomes == [True, False]
    assert db_session.query(ModerationLog).count() == 1


def test_delete_post(service, make_post, db_session) -> None:
    post = make_post()
    assert service.delete_post(post.id, "admin-fp", "doxxing") is True
    assert service.delete_post(post.id, "admin-fp", "doxxing") is False
    assert service.delete_post(999, "admin-fp", "doxxing") is False

    db_session.refresh(post)
    assert post.is_deleted
    assert db_session.query(ModerationLog).one().reason == "doxxing"


def test_create_report_flags_post(service, make_post, db_session) -> None:
    post = make_post()

    report = service.create_report(post.id, "reader-1", "spam", "selling stuff")

    assert report.id is not None
    db_session.refresh(post)
    assert post.moderation_status == "pending_review"
    assert post.moderation_score == pytest.approx(0.5)
    assert post.flagged_by == FLAG_SOURCE_USER_REPORT
    assert post.flagged_categories == ["spam"]
    assert service.get_report_count(post.id) == 1


def test_create_report_leaves_pending_post_untouched(service, make_post, db_session) -> None:
    post = make_post()
    service.flag_post(post.id, 0.9, ["violence"], FLAG_SOURCE_SYSTEM_SCAN)

    service.create_report(post.id, "reader-1", "spam")

    db_session.refresh(post)
    assert post.flagged_categories == ["violence"]
    assert post.flagged_by == FLAG_SOURCE_SYSTEM_SCAN


def test_duplicate_report_raises(service, make_post, db_session) -> None:
    post = make_post()
    service.create_report(post.id, "reader-1", "spam")

    with pytest.raises(AlreadyReportedError):
        service.create_report(post.id, "reader-1", "other")

    assert db_session.query(Report).count() == 1
    service.create_report(post.id, "reader-2", "other")
    assert service.get_report_count(post.id) == 2


def test_report_missing_or_deleted_post(service, make_post) -> None:
    with pytest.raises(PostNotFoundError):
        service.create_report(777, "reader-1", "spam")
    deleted = make_post(status=POST_STATUS_DELETED)
    with pytest.raises(PostNotFoundError):
        service.create_report(deleted.id, "reader-1", "spam")


def test_get_stats(service, make_post) -> None:
    make_post("a", moderation_status="clean")
    make_post("b", moderation_status="clean")
    pending = make_post("c")
    service.create_report(pending.id, "reader-1", "spam")

    stats = service.get_stats()

    assert stats.counts["clean"] == 2
    assert stats.counts["pending_review"] == 1
    assert stats.counts["unscanned"] == 0
    assert stats.counts["rejected"] == 0
    assert stats.total_reports == 1
    assert stats.today_reports == 1


def test_moderation_log_is_append_only(service, make_post, db_session) -> None:
    post = make_post()
    service.delete_post(post.id, "admin-fp", "rule 3")
    log = db_session.query(ModerationLog).one()

    log.reason = "edited"
    with pytest.raises(ImmutableLogError):
        db_session.commit()
    db_session.rollback()

    db_session.delete(log)
    with pytest.raises(ImmutableLogError):
        db_session.commit()


def test_lock_and_unlock_thread(service, make_post, db_session) -> None:
    thread = make_post()
    reply = make_post("a reply", parent_id=thread.id)

    assert service.unlock_thread(thread.id, "admin-fp") is False
    assert service.lock_thread(thread.id, "admin-fp") is True
    assert service.lock_thread(thread.id, "admin-fp") is False
    assert service.lock_thread(reply.id, "admin-fp") is False
    assert service.lock_thread(999, "admin-fp") is False

    db_session.refresh(thread)
    assert thread.is_locked is True

    assert service.unlock_thread(thread.id, "admin-fp") is True
    db_session.refresh(thread)
    assert thread.is_locked is False

    actions = [log.action for log in db_session.query(ModerationLog).order_by(ModerationLog.id)]
    assert actions == ["lock", "unlock"]


def test_lock_ignores_deleted_thread(service, make_post) -> None:
    thread = make_post(status=POST_STATUS_DELETED)
    assert service.lock_thread(thread.id, "admin-fp") is False


def test_delete_posts_by_fingerprint(service, make_post, db_session) -> None:
    first = make_post("one", author_fingerprint="spammer")
    make_post("two", author_fingerprint="spammer")
    make_post("gone", author_fingerprint="spammer", status=POST_STATUS_DELETED)
    bystander = make_post("fine", author_fingerprint="someone-else")

    assert service.delete_posts_by_fingerprint("spammer", "admin-fp", "flooding") == 2
    assert service.delete_posts_by_fingerprint("spammer", "admin-fp", "flooding") == 0

    db_session.refresh(first)
    db_session.refresh(bystander)
    assert first.is_deleted
    assert not bystander.is_deleted
    log = db_session.query(ModerationLog).one()
    assert (log.action, log.target_id, log.reason) == ("delete_by_author", "spammer", "flooding")
    assert log.details == {"affected_count": 2}
