import base64
import json

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autopilot.application.services.email_ingest_service import build_ingest_query, ingest_idea_emails
from autopilot.domain import models  # noqa: F401
from autopilot.domain.models.idea import Idea, IdeaStatus
from autopilot.infrastructure.db.base import Base
from autopilot.integrations.gmail_client import GmailClient, GmailClientError, extract_plain_text


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


MESSAGES = {
    "m1": {
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [{"name": "From", "value": "Ben <ben@example.com>"}, {"name": "Subject", "value": "CONTENT"}],
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": _b64("  Write about dense queues  \n")}},
                        {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
                    ],
                }
            ],
        }
    },
    "m2": {
        "payload": {
            "mimeType": "text/html",
            "headers": [{"name": "From", "value": "ben@example.com"}],
            "body": {"data": _b64("<p>only html</p>")},
        }
    },
}


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


class FakeGmail:
    def __init__(self, messages: dict | None = None) -> None:
        self.messages = MESSAGES if messages is None else messages
        self.modified: list[str] = []
        self.list_params: dict = {}
        self.modify_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/token"):
            return httpx.Response(200, json={"access_token": "access-1", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer access-1"
        if path.endswith("/messages"):
            self.list_params = dict(request.url.params)
            return httpx.Response(200, json={"messages": [{"id": message_id} for message_id in self.messages]})
        if path.endswith("/modify"):
            assert json.loads(request.content) == {"removeLabelIds": ["UNREAD"]}
            if self.modify_status >= 400:
                return httpx.Response(self.modify_status, json={"error": "unavailable"})
            self.modified.append(path.split("/")[-2])
            return httpx.Response(200, json={})
        message_id = path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"id": message_id, **self.messages[message_id]})


def _client(handler) -> GmailClient:
    return GmailClient(
        client_id="client",
        client_secret="secret",
        refresh_token="refresh",
        transport=httpx.MockTransport(handler),
    )


def test_extract_plain_text_walks_nested_parts():
    assert extract_plain_text(MESSAGES["m1"]["payload"]) == "  Write about dense queues  \n"
    assert extract_plain_text(MESSAGES["m2"]["payload"]) is None
    assert extract_plain_text({"mimeType": "text/plain", "body": {"data": _b64("top level")}}) == "top level"


def test_build_ingest_query_with_sender_allow_list():
    assert build_ingest_query("subject:CONTENT is:unread", []) == "subject:CONTENT is:unread"
    assert (
        build_ingest_query("subject:CONTENT is:unread", ["a@example.com", "b@example.com"])
        == "subject:CONTENT is:unread from:(a@example.com OR b@example.com)"
    )


def test_ingest_creates_ideas_and_marks_only_them_read(db_session):
    gmail = FakeGmail()

    result = ingest_idea_emails(db_session, client=_client(gmail))

    assert result.to_dict() == {"processed": 2, "created": 1, "mark_read_failed": 0}
    assert gmail.modified == ["m1"]
    assert gmail.list_params["q"] == "subject:CONTENT is:unread"
    ideas = db_session.execute(select(Idea)).scalars().all()
    assert [(idea.content, idea.source, idea.status) for idea in ideas] == [
        ("Write about dense queues", "Ben <ben@example.com>", IdeaStatus.NEW.value)
    ]


def test_ingest_requires_credentials(db_session):
    client = GmailClient(client_id="", client_secret="", refresh_token="", transport=httpx.MockTransport(FakeGmail()))

    with pytest.raises(GmailClientError):
        ingest_idea_emails(db_session, client=client)


def _plain_message(text: str) -> dict:
    return {
        "payload": {
            "mimeType": "text/plain",
            "headers": [{"name": "From", "value": "ben@example.com"}],
            "body": {"data": _b64(text)},
        }
    }


def test_failed_mark_read_does_not_duplicate_ideas_on_next_scan(db_session):
    gmail = FakeGmail({"a1": _plain_message("idea a1"), "a2": _plain_message("idea a2"), "a3": _plain_message("idea a3")})
    client = _client(gmail)
    gmail.modify_status = 503

    first = ingest_idea_emails(db_session, client=client)

    assert first.to_dict() == {"processed": 3, "created": 3, "mark_read_failed": 3}
    assert gmail.modified == []

    gmail.modify_status = 200
    second = ingest_idea_emails(db_session, client=client)

    assert second.to_dict() == {"processed": 3, "created": 0, "mark_read_failed": 0}
    assert gmail.modified == ["a1", "a2", "a3"]
    ideas = db_session.execute(select(Idea).order_by(Idea.content)).scalars().all()
    assert [(idea.content, idea.source_message_id) for idea in ideas] == [
        ("idea a1", "a1"),
        ("idea a2", "a2"),
        ("idea a3", "a3"),
    ]
