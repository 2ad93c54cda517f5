"""Content generation flows for creators.

Each flow renders a prompt, asks the model for a single JSON object, and
validates the reply against a Pydantic output model. Replies that are not
JSON or do not match the schema raise ``AIGenerationError``.
"""

import asyncio
import json
import re
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from ..errors import AIGenerationError
from ..logging_config import get_logger
from .models import ContentModel, ModelMessage

logger = get_logger("ajira.ai.flows")

Platform = Literal["Facebook", "Twitter", "Instagram", "LinkedIn", "TikTok"]

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# =============================================================================
# Input / Output Models
# =============================================================================


class BlogPostInput(BaseModel):
    topic: str = Field(..., min_length=3, max_length=300)
    seo_keywords: str = Field(default="", max_length=500)
    brand_voice: str = Field(default="", max_length=500)


class BlogPostOutput(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, description="Post body as HTML")
    reasoning: str = ""


class SocialPostInput(BaseModel):
    content_idea: str = Field(..., min_length=3, max_length=2000)
    platforms: list[Platform] = Field(..., min_length=1)


class SocialPost(BaseModel):
    platform: Platform
    post: str = Field(..., min_length=1)


class SocialPostOutput(BaseModel):
    posts: list[SocialPost]


class TranslateInput(BaseModel):
    html_content: str = Field(..., min_length=1)
    target_language: str = Field(..., min_length=2, max_length=50)
    original_language: str | None = Field(default=None, max_length=50)


class TranslateOutput(BaseModel):
    translated_html_content: str = Field(..., min_length=1)


# =============================================================================
# Prompts
# =============================================================================

BLOG_POST_SYSTEM = (
    "You are an expert content writer and SEO specialist. "
    "You reply with a single JSON object and nothing else."
)

BLOG_POST_PROMPT = """Write a complete blog post.

Topic: {topic}
SEO keywords: {seo_keywords}
Brand voice: {brand_voice}

Work the SEO keywords in naturally and keep to the brand voice throughout.
Format the body as HTML using <h2>, <p>, <ul> and <strong> where they help.

Reply with JSON of exactly this shape:
{{"title": "...", "content": "<h2>...</h2><p>...</p>", "reasoning": "why this angle and structure"}}"""

SOCIAL_POST_SYSTEM = (
    "You are a social media expert. You reply with a single JSON object and nothing else."
)

SOCIAL_POST_PROMPT = """Write one unique post per platform from a single content idea.

Content idea: {content_idea}
Platforms: {platforms}

Match each platform's length limits and conventions (hashtags, tone, calls to action).

Reply with JSON of exactly this shape:
{{"posts": [{{"platform": "Twitter", "post": "..."}}]}}"""

TRANSLATE_SYSTEM = (
    "You are a professional translator. You reply with a single JSON object and nothing else."
)

TRANSLATE_PROMPT = """Translate the HTML below {source}into {target_language}.

Keep every HTML tag and attribute exactly as it is; translate only the text between tags.

HTML:
{html_content}

Reply with JSON of exactly this shape:
{{"translated_html_content": "..."}}"""


# =============================================================================
# Helpers
# =============================================================================


def parse_json_reply(text: str) -> dict:
    """Pull a JSON object out of a model reply, tolerating code fences."""
    cleaned = _FENCE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Fall back to the outermost braces when the model adds prose
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise AIGenerationError("Model reply did not contain JSON")
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise AIGenerationError(f"Model reply was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AIGenerationError("Model reply was not a JSON object")
    return data


async def _run(model: ContentModel, system: str, prompt: str, output_type: type[BaseModel]):
    response = await asyncio.to_thread(
        model.generate, [ModelMessage(role="user", content=prompt)], system=system
    )
    data = parse_json_reply(response.content)
    try:
        return output_type.model_validate(data)
    except ValidationError as e:
        logger.warning(f"{output_type.__name__} failed validation: {e.error_count()} errors")
        raise AIGenerationError(f"Model reply did not match {output_type.__name__}") from e


# =============================================================================
# Flows
# =============================================================================


async def generate_blog_post(model: ContentModel, data: BlogPostInput) -> BlogPostOutput:
    prompt = BLOG_POST_PROMPT.format(
        topic=data.topic,
        seo_keywords=data.seo_keywords or "none",
        brand_voice=data.brand_voice or "friendly and professional",
    )
    return await _run(model, BLOG_POST_SYSTEM, prompt, BlogPostOutput)


async def generate_social_posts(model: ContentModel, data: SocialPostInput) -> SocialPostOutput:
    """Generate posts, keeping only the requested platforms (first post per platform)."""
    prompt = SOCIAL_POST_PROMPT.format(
        content_idea=data.content_idea, platforms=", ".join(data.platforms)
    )
    output = await _run(model, SOCIAL_POST_SYSTEM, prompt, SocialPostOutput)

    seen: set[str] = set()
    posts = []
    for post in output.posts:
        if post.platform in data.platforms and post.platform not in seen:
            seen.add(post.platform)
            posts.append(post)
    if not posts:
        raise AIGenerationError("Model returned no posts for the requested platforms")
    return SocialPostOutput(posts=posts)


async def translate_blog_content(model: ContentModel, data: TranslateInput) -> TranslateOutput:
    source = f"from {data.original_language} " if data.original_language else ""
    prompt = TRANSLATE_PROMPT.format(
        source=source,
        target_language=data.target_language,
        html_content=data.html_content,
    )
    return await _run(model, TRANSLATE_SYSTEM, prompt, TranslateOutput)
