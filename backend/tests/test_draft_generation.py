import asyncio
import json
import uuid

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autopilot.application.services.ai_generation_contract import parse_draft_list, strip_code_fences
from autopilot.application.services.ai_provider import (
    AICompletionRequest,
    AIProviderError,
    AIProviderValidationError,
    AnthropicProvider,
    BaseAIProvider,
)
from autopilot.application.services.content_service import (
    generate_drafts,
    regenerate_piece,
    update_piece,
    validate_generation_counts,
)
from autopilot.application.services.draft_generator import DraftGenerator
from autopilot.core.config import settings
from autopilot.core.errors import ExternalServiceError, NotFoundError, ValidationError
from autopilot.domain import models  # noqa: F401
from autopilot.domain.models.content_piece import ContentPiece, ContentPieceStatus
from autopilot.domain.models.idea import Idea, IdeaStatus
from autopilot.infrastructure.db.base import Base

TWO_LINKEDIN_ONE_BLOG = json.dumps(
    [
        {"type": "linkedin", "content": "Hook one"},
        {"type": "linkedin", "content": "Hook two"},
        {"type": "blog", "title": "Deep dive", "content": "Long form"},
    ]
)


class ScriptedProvider(BaseAIProvider):
    name = "scripted"

    def __init__(self, replies: list[str]) -> None:
        super().__init__()
        self.replies = list(replies)
        self.requests: list[AICompletionRequest] = []

    async def complete(self, request: AICompletionRequest) -> str:
        self.requests.append(request)
        if not self.replies:
            raise AIProviderError("no scripted reply left")
        return self.replies.pop(0)


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


def _idea(db, content: str = "Dense queues beat linked lists") -> uuid.UUID:
    idea = Idea(content=content, status=IdeaStatus.NEW.value)
    db.add(idea)
    db.commit()
    return idea.id


@pytest.mark.parametrize(
    ("linkedin_count", "blog_count"),
    [(-1, 1), (4, 0), (0, 3), (3, 2 + 1), (0, 0)],
)
def test_validate_generation_counts_rejects_out_of_range(linkedin_count, blog_count):
    with pytest.raises(ValidationError):
        validate_generation_counts(linkedin_count=linkedin_count, blog_count=blog_count)


def test_validate_generation_counts_accepts_limits():
    validate_generation_counts(linkedin_count=3, blog_count=2)
    validate_generation_counts(linkedin_count=0, blog_count=1)


def test_validate_generation_counts_follows_configured_total(monkeypatch):
    monkeypatch.setattr(settings, "max_total_drafts", 3)
    with pytest.raises(ValidationError):
        validate_generation_counts(linkedin_count=2, blog_count=2)


def test_strip_code_fences():
    assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fences("plain text") == "plain text"


def test_parse_draft_list_enforces_exact_counts_and_blog_titles():
    drafts = parse_draft_list(f"```json\n{TWO_LINKEDIN_ONE_BLOG}\n```", expected_counts={"linkedin": 2, "blog": 1})
    assert [(draft.type, draft.title) for draft in drafts] == [
        ("linkedin", None),
        ("linkedin", None),
        ("blog", "Deep dive"),
    ]

    with pytest.raises(AIProviderValidationError, match="Expected 1 linkedin"):
        parse_draft_list(TWO_LINKEDIN_ONE_BLOG, expected_counts={"linkedin": 1, "blog": 1})
    with pytest.raises(AIProviderValidationError, match="title"):
        parse_draft_list('[{"type": "blog", "content": "x"}]', expected_counts={"linkedin": 0, "blog": 1})
    with pytest.raises(AIProviderValidationError, match="Invalid JSON"):
        parse_draft_list("not json", expected_counts={"linkedin": 1, "blog": 0})
    with pytest.raises(AIProviderValidationError, match="Schema"):
        parse_draft_list('[{"type": "tiktok", "content": "x"}]', expected_counts={"linkedin": 1, "blog": 0})


def test_generator_retries_with_correction_prompt():
    provider = ScriptedProvider(["oops, not json", TWO_LINKEDIN_ONE_BLOG])
    generator = DraftGenerator(provider, max_retries=1)

    drafts = asyncio.run(generator.generate(idea_content="An idea", linkedin_count=2, blog_count=1))

    assert len(drafts) == 3
    assert len(provider.requests) == 2
    assert "exactly 2 LinkedIn posts and 1 blog posts" in provider.requests[0].system_prompt
    assert "Previous output was invalid" in provider.requests[1].user_prompt


def test_generator_gives_up_after_retries():
    provider = ScriptedProvider(["[]", "[]"])
    generator = DraftGenerator(provider, max_retries=1)

    with pytest.raises(AIProviderError, match="after retries"):
        asyncio.run(generator.generate(idea_content="An idea", linkedin_count=1, blog_count=0))


def test_generate_drafts_persists_pieces_and_marks_idea_drafted(db_session):
    idea_id = _idea(db_session)
    generator = DraftGenerator(ScriptedProvider([TWO_LINKEDIN_ONE_BLOG]), max_retries=0)

    pieces = generate_drafts(db_session, idea_id, linkedin_count=2, blog_count=1, generator=generator)

    assert len(pieces) == 3
    assert {piece.status for piece in pieces} == {ContentPieceStatus.DRAFT.value}
    assert {piece.queue_position for piece in pieces} == {None}
    assert db_session.get(Idea, idea_id).status == IdeaStatus.DRAFTED.value
    blog = next(piece for piece in pieces if piece.type == "blog")
    assert blog.title == "Deep dive"


def test_generate_drafts_restores_idea_status_on_failure(db_session):
    idea_id = _idea(db_session)
    generator = DraftGenerator(ScriptedProvider(["garbage"]), max_retries=0)

    with pytest.raises(ExternalServiceError):
        generate_drafts(db_session, idea_id, linkedin_count=1, blog_count=0, generator=generator)

    assert db_session.get(Idea, idea_id).status == IdeaStatus.NEW.value
    assert db_session.execute(select(ContentPiece)).scalars().all() == []


def test_generate_drafts_keeps_drafted_idea_drafted(db_session):
    idea_id = _idea(db_session)
    db_session.get(Idea, idea_id).status = IdeaStatus.DRAFTED.value
    db_session.commit()
    seen_statuses: list[str] = []

    class StatusRecordingProvider(ScriptedProvider):
        async def complete(self, request: AICompletionRequest) -> str:
            seen_statuses.append(db_session.get(Idea, idea_id).status)
            return await super().complete(request)

    generate_drafts(
        db_session,
        idea_id,
        linkedin_count=2,
        blog_count=1,
        generator=DraftGenerator(StatusRecordingProvider([TWO_LINKEDIN_ONE_BLOG]), max_retries=0),
    )
    with pytest.raises(ExternalServiceError):
        generate_drafts(
            db_session,
            idea_id,
            linkedin_count=1,
            blog_count=0,
            generator=DraftGenerator(StatusRecordingProvider(["garbage"]), max_retries=0),
        )

    assert seen_statuses == [IdeaStatus.DRAFTED.value, IdeaStatus.DRAFTED.value]
    assert db_session.get(Idea, idea_id).status == IdeaStatus.DRAFTED.value
    assert len(db_session.execute(select(ContentPiece)).scalars().all()) == 3


def test_generate_drafts_for_unknown_idea(db_session):
    generator = DraftGenerator(ScriptedProvider([]), max_retries=0)

    with pytest.raises(NotFoundError):
        generate_drafts(db_session, uuid.uuid4(), linkedin_count=1, blog_count=0, generator=generator)


def test_regenerate_blog_replaces_title_and_content(db_session):
    idea_id = _idea(db_session)
    piece = ContentPiece(idea_id=idea_id, type="blog", title="Old", content="Old body")
    db_session.add(piece)
    db_session.commit()
    provider = ScriptedProvider(['```json\n{"title": "New angle", "content": "Fresh body"}\n```'])

    updated = regenerate_piece(db_session, piece.id, generator=DraftGenerator(provider, max_retries=0))

    assert (updated.title, updated.content) == ("New angle", "Fresh body")
    assert "ORIGINAL IDEA: Dense queues beat linked lists" in provider.requests[0].system_prompt
    assert provider.requests[0].user_prompt == "Current version: Old body"


def test_regenerate_linkedin_uses_plain_text(db_session):
    idea_id = _idea(db_session)
    piece = ContentPiece(idea_id=idea_id, type="linkedin", content="Old hook")
    db_session.add(piece)
    db_session.commit()

    updated = regenerate_piece(
        db_session,
        piece.id,
        generator=DraftGenerator(ScriptedProvider(["  A sharper hook  "]), max_retries=0),
    )

    assert updated.content == "A sharper hook"
    assert updated.title is None


def test_published_piece_cannot_be_edited_or_regenerated(db_session):
    idea_id = _idea(db_session)
    piece = ContentPiece(idea_id=idea_id, type="linkedin", content="Live", status=ContentPieceStatus.PUBLISHED.value)
    db_session.add(piece)
    db_session.commit()

    with pytest.raises(ValidationError):
        update_piece(db_session, piece.id, content="Edited")
    with pytest.raises(ValidationError):
        regenerate_piece(db_session, piece.id, generator=DraftGenerator(ScriptedProvider([]), max_retries=0))


def test_anthropic_provider_reads_text_blocks(monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", "sk-test")
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["api_key"] = request.headers["x-api-key"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "[]"}]})

    provider = AnthropicProvider(transport=httpx.MockTransport(handler))
    text = asyncio.run(provider.complete(AICompletionRequest(system_prompt="sys", user_prompt="idea")))

    assert text == "[]"
    assert captured["url"].endswith("/messages")
    assert captured["api_key"] == "sk-test"
    assert captured["body"]["system"] == "sys"
    assert captured["body"]["messages"] == [{"role": "user", "content": "idea"}]


def test_anthropic_provider_maps_http_errors(monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", "sk-test")
    provider = AnthropicProvider(transport=httpx.MockTransport(lambda request: httpx.Response(529, text="overloaded")))

    with pytest.raises(AIProviderError, match="529"):
        asyncio.run(provider.complete(AICompletionRequest(system_prompt="sys", user_prompt="idea")))
