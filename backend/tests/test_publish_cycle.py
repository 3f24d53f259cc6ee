import asyncio
import uuid

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autopilot.application.services import publish_cycle as publish_cycle_module
from autopilot.application.services.publish_cycle import PublishCycle, PublishCycleStatus
from autopilot.application.services.queue_manager import QueueManager
from autopilot.application.services.settings_service import set_channel_enabled
from autopilot.domain import models  # noqa: F401
from autopilot.domain.models.blog_post import BlogPost
from autopilot.domain.models.content_piece import ContentPiece, ContentPieceStatus, ContentType
from autopilot.core.errors import PersistenceError
from autopilot.domain.models.idea import Idea
from autopilot.infrastructure.db.base import Base
from autopilot.infrastructure.locks import LocalQueueLock
from autopilot.integrations.publishing_channels import (
    AdapterPermanentError,
    AdapterRetryableError,
    BasePublishingChannel,
    PublishOutcome,
    get_publishing_channel,
)


class RecordingLinkedInChannel(BasePublishingChannel):
    content_type = ContentType.LINKEDIN.value

    def __init__(self, *, error: Exception | None = None, delay_seconds: float = 0.0) -> None:
        self.error = error
        self.delay_seconds = delay_seconds
        self.published: list[uuid.UUID] = []

    async def validate_credentials(self) -> None:
        return None

    async def publish_piece(self, *, piece: ContentPiece) -> PublishOutcome:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        self.published.append(piece.id)
        return PublishOutcome(external_id=f"urn:li:share:{len(self.published)}")


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def lock():
    return LocalQueueLock()


@pytest.fixture
def queue_manager(lock):
    return QueueManager(lock=lock)


def _enable(db, content_type: ContentType, enabled: bool = True) -> None:
    set_channel_enabled(db, content_type=content_type, enabled=enabled)
    db.commit()


def _queued(db, queue_manager, content_type: ContentType, titles: list[str]) -> list[uuid.UUID]:
    idea = Idea(content="Idea for publishing")
    db.add(idea)
    db.flush()
    pieces = [
        ContentPiece(
            idea_id=idea.id,
            type=content_type.value,
            title=title if content_type == ContentType.BLOG else None,
            content=f"Body of {title}",
            status=ContentPieceStatus.DRAFT.value,
        )
        for title in titles
    ]
    db.add_all(pieces)
    db.commit()
    piece_ids = [piece.id for piece in pieces]
    queue_manager.insert_many(db, piece_ids)
    return piece_ids


def _failed_piece(db, content_type: ContentType) -> uuid.UUID:
    idea = Idea(content="Idea with a failed piece")
    db.add(idea)
    db.flush()
    piece = ContentPiece(
        idea_id=idea.id,
        type=content_type.value,
        title="Failed" if content_type == ContentType.BLOG else None,
        content="Failed body",
        status=ContentPieceStatus.FAILED.value,
        error_message="LinkedIn publish failed: 422",
    )
    db.add(piece)
    db.commit()
    return piece.id


def _cycle(content_type, queue_manager, channel: BasePublishingChannel, **kwargs) -> PublishCycle:
    return PublishCycle(
        content_type,
        queue_manager=queue_manager,
        channel_resolver=lambda _content_type, _db: channel,
        **kwargs,
    )


def _layout(db, queue_manager, content_type):
    return [(piece.id, piece.queue_position) for piece in queue_manager.snapshot(db, content_type)]


def _row_state(db, piece_ids):
    pieces = [db.get(ContentPiece, piece_id) for piece_id in piece_ids]
    return [(piece.status, piece.queue_position, piece.updated_at) for piece in pieces]


def test_scenario_f_publishes_head_and_advances_queue(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    x, y, z = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["x", "y", "z"])
    channel = RecordingLinkedInChannel()

    result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)

    assert result.status == PublishCycleStatus.PUBLISHED
    assert result.piece_id == x
    assert result.external_id == "urn:li:share:1"
    assert channel.published == [x]
    published = db_session.get(ContentPiece, x)
    assert published.status == ContentPieceStatus.PUBLISHED.value
    assert published.queue_position is None
    assert published.external_id == "urn:li:share:1"
    assert published.published_at is not None
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(y, 1), (z, 2)]


def test_scenario_d_failed_piece_blocks_the_cycle(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    queued = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    failed_id = _failed_piece(db_session, ContentType.LINKEDIN)
    channel = RecordingLinkedInChannel()

    result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)

    assert result.status == PublishCycleStatus.SKIPPED
    assert result.failed_piece_id == failed_id
    assert channel.published == []
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(queued[0], 1), (queued[1], 2)]
    assert db_session.get(ContentPiece, failed_id).status == ContentPieceStatus.FAILED.value


def test_failed_piece_of_another_type_does_not_block(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    (head,) = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a"])
    _failed_piece(db_session, ContentType.BLOG)

    result = _cycle(ContentType.LINKEDIN, queue_manager, RecordingLinkedInChannel()).run(db_session)

    assert result.status == PublishCycleStatus.PUBLISHED
    assert result.piece_id == head


def test_scenario_e_disabled_channel_writes_nothing(db_engine, db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN, enabled=False)
    queued = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    before = _row_state(db_session, queued)
    channel = RecordingLinkedInChannel()
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement.lstrip().split(" ", 1)[0].upper())

    event.listen(db_engine, "before_cursor_execute", _record)
    try:
        result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)
    finally:
        event.remove(db_engine, "before_cursor_execute", _record)

    assert result.status == PublishCycleStatus.DISABLED
    assert channel.published == []
    assert statements
    assert not {"INSERT", "UPDATE", "DELETE"} & set(statements)
    db_session.expire_all()
    assert _row_state(db_session, queued) == before
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(queued[0], 1), (queued[1], 2)]


def test_missing_setting_means_disabled(db_session, queue_manager):
    _queued(db_session, queue_manager, ContentType.BLOG, ["Only"])

    result = _cycle(ContentType.BLOG, queue_manager, RecordingLinkedInChannel()).run(db_session)

    assert result.status == PublishCycleStatus.DISABLED


def test_empty_queue_reports_empty(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)

    result = _cycle(ContentType.LINKEDIN, queue_manager, RecordingLinkedInChannel()).run(db_session)

    assert result.status == PublishCycleStatus.EMPTY
    assert result.to_dict() == {"content_type": "linkedin", "status": "empty"}


def test_channel_failure_marks_piece_failed_and_shifts_tail(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    a, b, c = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b", "c"])
    channel = RecordingLinkedInChannel(error=AdapterRetryableError("LinkedIn publish temporary failure: 503"))

    result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)

    assert result.status == PublishCycleStatus.FAILED
    assert result.piece_id == a
    assert "503" in result.error
    assert result.retryable is True
    assert result.to_dict()["retryable"] is True
    failed = db_session.get(ContentPiece, a)
    assert failed.status == ContentPieceStatus.FAILED.value
    assert failed.queue_position is None
    assert failed.error_message == "LinkedIn publish temporary failure: 503"
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(b, 1), (c, 2)]

    follow_up = _cycle(ContentType.LINKEDIN, queue_manager, RecordingLinkedInChannel()).run(db_session)
    assert follow_up.status == PublishCycleStatus.SKIPPED
    assert follow_up.failed_piece_id == a


def test_channel_timeout_is_a_failure(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    (head,) = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["slow"])
    channel = RecordingLinkedInChannel(delay_seconds=1.0)

    result = _cycle(ContentType.LINKEDIN, queue_manager, channel, publish_timeout_seconds=0.05).run(db_session)

    assert result.status == PublishCycleStatus.FAILED
    assert "timed out" in result.error
    assert result.retryable is True
    assert db_session.get(ContentPiece, head).status == ContentPieceStatus.FAILED.value


def test_retry_after_failure_unblocks_the_channel(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    a, b = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    failing = RecordingLinkedInChannel(error=AdapterRetryableError("temporary"))
    _cycle(ContentType.LINKEDIN, queue_manager, failing).run(db_session)

    queue_manager.retry(db_session, a)
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(b, 1), (a, 2)]

    channel = RecordingLinkedInChannel()
    result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)
    assert result.status == PublishCycleStatus.PUBLISHED
    assert channel.published == [b]


def test_cycle_returns_locked_when_lease_is_held(db_session, lock, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    queued = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a"])
    channel = RecordingLinkedInChannel()

    token = lock.acquire(ContentType.LINKEDIN.value, wait_seconds=0)
    try:
        result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)
    finally:
        lock.release(ContentType.LINKEDIN.value, token)

    assert result.status == PublishCycleStatus.LOCKED
    assert channel.published == []
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(queued[0], 1)]


def test_blog_cycle_creates_post_with_unique_slug(db_session, queue_manager):
    _enable(db_session, ContentType.BLOG)
    first, second = _queued(db_session, queue_manager, ContentType.BLOG, ["Hello, World!", "Hello World"])

    def _blog_cycle():
        return PublishCycle(
            ContentType.BLOG,
            queue_manager=queue_manager,
            channel_resolver=get_publishing_channel,
        ).run(db_session)

    first_result = _blog_cycle()
    second_result = _blog_cycle()

    assert first_result.status == PublishCycleStatus.PUBLISHED
    assert first_result.slug == "hello-world"
    assert second_result.slug == "hello-world-2"
    posts = db_session.execute(select(BlogPost).order_by(BlogPost.slug)).scalars().all()
    assert [post.slug for post in posts] == ["hello-world", "hello-world-2"]
    assert posts[0].content_piece_id == first
    assert posts[0].excerpt == "Body of Hello, World!"
    assert db_session.get(ContentPiece, second).external_id == str(posts[1].id)
    assert queue_manager.snapshot(db_session, ContentType.BLOG) == []


def test_permanent_channel_error_is_reported_as_not_retryable(db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a"])
    channel = RecordingLinkedInChannel(error=AdapterPermanentError("LinkedIn publish failed: 422 duplicate"))

    result = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)

    assert result.status == PublishCycleStatus.FAILED
    assert result.retryable is False


def _failing_commits(monkeypatch, db, failures: int) -> None:
    original_commit = db.commit
    remaining = {"count": failures}

    def commit():
        if remaining["count"] > 0:
            remaining["count"] -= 1
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        original_commit()

    monkeypatch.setattr(db, "commit", commit)


def test_unsaved_publish_result_marks_piece_failed_and_blocks_channel(monkeypatch, db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    a, b = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    channel = RecordingLinkedInChannel()
    _failing_commits(monkeypatch, db_session, failures=1)

    with pytest.raises(PersistenceError, match="Publish result could not be saved"):
        _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)

    assert channel.published == [a]
    piece = db_session.get(ContentPiece, a)
    assert piece.status == ContentPieceStatus.FAILED.value
    assert piece.queue_position is None
    assert piece.external_id is None
    assert "urn:li:share:1" in piece.error_message
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(b, 1)]

    follow_up = _cycle(ContentType.LINKEDIN, queue_manager, channel).run(db_session)
    assert follow_up.status == PublishCycleStatus.SKIPPED
    assert follow_up.failed_piece_id == a
    assert channel.published == [a]


def test_unsaved_publish_and_failure_raise_and_leave_queue_untouched(
    monkeypatch, db_session, lock, queue_manager
):
    _enable(db_session, ContentType.LINKEDIN)
    a, b = _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    _failing_commits(monkeypatch, db_session, failures=2)

    with pytest.raises(PersistenceError, match="Publish failure could not be saved"):
        _cycle(ContentType.LINKEDIN, queue_manager, RecordingLinkedInChannel()).run(db_session)

    monkeypatch.undo()
    db_session.expire_all()
    assert db_session.get(ContentPiece, a).status == ContentPieceStatus.QUEUED.value
    assert _layout(db_session, queue_manager, ContentType.LINKEDIN) == [(a, 1), (b, 2)]
    token = lock.acquire(ContentType.LINKEDIN.value, wait_seconds=0)
    assert token is not None
    lock.release(ContentType.LINKEDIN.value, token)


def test_counters_are_mirrored_to_redis_only_when_requested(monkeypatch, db_session, queue_manager):
    _enable(db_session, ContentType.LINKEDIN)
    _queued(db_session, queue_manager, ContentType.LINKEDIN, ["a", "b"])
    mirrored: list[str] = []
    monkeypatch.setattr(
        publish_cycle_module,
        "increment_background_counter",
        lambda metric_name, amount=1: mirrored.append(metric_name),
    )

    in_process = _cycle(ContentType.LINKEDIN, queue_manager, RecordingLinkedInChannel()).run(db_session)
    assert in_process.status == PublishCycleStatus.PUBLISHED
    assert mirrored == []

    from_worker = _cycle(
        ContentType.LINKEDIN,
        queue_manager,
        RecordingLinkedInChannel(),
        mirror_counters=True,
    ).run(db_session)
    assert from_worker.status == PublishCycleStatus.PUBLISHED
    assert mirrored == ["publish_attempts_total"]
