import logging

from autopilot.application.services.ai_generation_contract import GeneratedDraft, parse_draft_list, parse_revision
from autopilot.application.services.ai_provider import (
    AICompletionRequest,
    AIProviderError,
    AIProviderValidationError,
    BaseAIProvider,
    get_ai_provider,
)
from autopilot.core.config import settings
from autopilot.domain.models.content_piece import ContentType

logger = logging.getLogger(__name__)


def build_generation_system_prompt(*, linkedin_count: int, blog_count: int, author_name: str) -> str:
    return (
        f"You are a content generation assistant for {author_name}. "
        f"Generate exactly {linkedin_count} LinkedIn posts and {blog_count} blog posts from this idea.\n\n"
        "RULES:\n"
        "- Blogs: 800-1200 words with compelling titles\n"
        "- LinkedIn: 75-120 words with strong hooks\n"
        "- Ensure variety in angles and perspectives across all pieces\n"
        "- Return JSON array with type, title (if blog), and content for each piece\n\n"
        "Return ONLY valid JSON array like:\n"
        "[\n"
        '  {"type": "linkedin", "content": "..."},\n'
        '  {"type": "blog", "title": "...", "content": "..."}\n'
        "]"
    )


def build_revision_system_prompt(*, idea_content: str, content_type: str, author_name: str) -> str:
    output_rule = (
        'Return ONLY a JSON object with "title" and "content" fields.'
        if content_type == ContentType.BLOG.value
        else "Return only the content text."
    )
    return (
        f"You are revising content for {author_name}. "
        "Create a fresh version maintaining the core message but with new structure and approach.\n\n"
        f"ORIGINAL IDEA: {idea_content}\n"
        f"TYPE: {content_type}\n\n"
        "Generate a completely new version with different hook/angle.\n"
        f"{output_rule}"
    )


class DraftGenerator:
    """Turns an idea into channel drafts through the configured LLM provider.

    Replies that fail to parse are retried with a correction note appended to
    the prompt, up to ``max_retries`` extra calls.
    """

    def __init__(self, provider: BaseAIProvider | None = None, *, max_retries: int | None = None) -> None:
        self.provider = provider or get_ai_provider()
        self.max_retries = settings.ai_max_retries if max_retries is None else max_retries
        self.author_name = settings.ai_author_name

    async def generate(self, *, idea_content: str, linkedin_count: int, blog_count: int) -> list[GeneratedDraft]:
        system_prompt = build_generation_system_prompt(
            linkedin_count=linkedin_count,
            blog_count=blog_count,
            author_name=self.author_name,
        )
        expected_counts = {
            ContentType.LINKEDIN.value: linkedin_count,
            ContentType.BLOG.value: blog_count,
        }
        return await self._complete_with_retries(
            system_prompt=system_prompt,
            user_prompt=idea_content,
            parse=lambda text: parse_draft_list(text, expected_counts=expected_counts),
        )

    async def regenerate(self, *, idea_content: str, content_type: str, current_content: str) -> GeneratedDraft:
        system_prompt = build_revision_system_prompt(
            idea_content=idea_content,
            content_type=content_type,
            author_name=self.author_name,
        )
        return await self._complete_with_retries(
            system_prompt=system_prompt,
            user_prompt=f"Current version: {current_content}",
            parse=lambda text: parse_revision(text, content_type=content_type),
        )

    async def _complete_with_retries(self, *, system_prompt: str, user_prompt: str, parse):
        last_error: AIProviderValidationError | None = None
        correction_prompt = ""
        for attempt in range(self.max_retries + 1):
            text = await self.provider.complete(
                AICompletionRequest(system_prompt=system_prompt, user_prompt=f"{user_prompt}{correction_prompt}")
            )
            try:
                return parse(text)
            except AIProviderValidationError as exc:
                last_error = exc
                logger.warning(
                    "draft_generation_output_invalid provider=%s attempt=%s reason=%s",
                    self.provider.name,
                    attempt + 1,
                    exc,
                )
                correction_prompt = (
                    f"\n\nPrevious output was invalid: {exc}. "
                    "Regenerate the answer strictly in the requested format."
                )
        raise AIProviderError(f"AI generation failed after retries: {last_error}")
