"""Shape of what the model must return, and how its text is turned into drafts."""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from jsonschema import ValidationError as JsonSchemaValidationError
from jsonschema import validate

from autopilot.application.services.ai_provider import AIProviderValidationError
from autopilot.domain.models.content_piece import ContentType

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?")

DRAFT_LIST_SCHEMA: dict[str, Any] = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["type", "content"],
        "properties": {
            "type": {"type": "string", "enum": [item.value for item in ContentType]},
            "title": {"type": ["string", "null"], "maxLength": 255},
            "content": {"type": "string", "minLength": 1},
        },
    },
}

REVISED_BLOG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["title", "content"],
    "properties": {
        "title": {"type": "string", "minLength": 1, "maxLength": 255},
        "content": {"type": "string", "minLength": 1},
    },
}


@dataclass(frozen=True)
class GeneratedDraft:
    type: str
    title: str | None
    content: str


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_PATTERN.sub("", text or "").strip()


def _load_json(text: str) -> Any:
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AIProviderValidationError(f"Invalid JSON returned: {exc}") from exc


def parse_draft_list(text: str, *, expected_counts: dict[str, int]) -> list[GeneratedDraft]:
    payload = _load_json(text)
    try:
        validate(instance=payload, schema=DRAFT_LIST_SCHEMA)
    except JsonSchemaValidationError as exc:
        raise AIProviderValidationError(f"Schema validation failed: {exc.message}") from exc

    drafts: list[GeneratedDraft] = []
    for item in payload:
        title = (item.get("title") or "").strip() or None
        if item["type"] == ContentType.BLOG.value and title is None:
            raise AIProviderValidationError("Blog drafts must have a title")
        drafts.append(GeneratedDraft(type=item["type"], title=title, content=item["content"].strip()))

    produced = Counter(draft.type for draft in drafts)
    for content_type, expected in expected_counts.items():
        if produced.get(content_type, 0) != expected:
            raise AIProviderValidationError(
                f"Expected {expected} {content_type} drafts, got {produced.get(content_type, 0)}"
            )
    unexpected = set(produced) - {key for key, value in expected_counts.items() if value > 0}
    if unexpected:
        raise AIProviderValidationError(f"Unexpected draft types: {', '.join(sorted(unexpected))}")
    return drafts


def parse_revision(text: str, *, content_type: str) -> GeneratedDraft:
    if content_type == ContentType.BLOG.value:
        payload = _load_json(text)
        try:
            validate(instance=payload, schema=REVISED_BLOG_SCHEMA)
        except JsonSchemaValidationError as exc:
            raise AIProviderValidationError(f"Schema validation failed: {exc.message}") from exc
        return GeneratedDraft(type=content_type, title=payload["title"].strip(), content=payload["content"].strip())

    content = strip_code_fences(text)
    if not content:
        raise AIProviderValidationError("Revision is empty")
    return GeneratedDraft(type=content_type, title=None, content=content)
