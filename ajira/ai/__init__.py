"""AI-assisted content generation."""

from .flows import (
    BlogPostInput,
    BlogPostOutput,
    SocialPostInput,
    SocialPostOutput,
    TranslateInput,
    TranslateOutput,
    generate_blog_post,
    generate_social_posts,
    translate_blog_content,
)
from .models import (
    AIModelError,
    AnthropicModel,
    ContentModel,
    ModelMessage,
    ModelResponse,
    get_content_model,
)

__all__ = [
    "AIModelError",
    "AnthropicModel",
    "ContentModel",
    "ModelMessage",
    "ModelResponse",
    "get_content_model",
    "BlogPostInput",
    "BlogPostOutput",
    "SocialPostInput",
    "SocialPostOutput",
    "TranslateInput",
    "TranslateOutput",
    "generate_blog_post",
    "generate_social_posts",
    "translate_blog_content",
]
