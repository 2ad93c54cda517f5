"""AI content generation routes for creators and vendors."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from ..ai import (
    BlogPostInput,
    BlogPostOutput,
    ContentModel,
    SocialPostInput,
    SocialPostOutput,
    TranslateInput,
    TranslateOutput,
    generate_blog_post,
    generate_social_posts,
    get_content_model,
    translate_blog_content,
)
from ..auth import AuthContext, require_roles
from ..config import Settings, get_settings
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..rbac import Role

logger = get_logger("ajira.ai")
router = APIRouter(prefix="/api/ai", tags=["ai"])

ContentCreator = Annotated[
    AuthContext, Depends(require_roles(Role.creator, Role.admin, Role.vendor))
]


def get_model(settings: Annotated[Settings, Depends(get_settings)]) -> ContentModel:
    """FastAPI dependency for the configured content model."""
    return get_content_model(settings)


Model = Annotated[ContentModel, Depends(get_model)]


@router.post("/blog-post", response_model=BlogPostOutput)
@limiter.limit("10/minute")
async def blog_post(request: Request, body: BlogPostInput, auth: ContentCreator, model: Model):
    logger.info(f"POST /ai/blog-post | user={auth.user_id} | topic={body.topic[:50]}")
    return await generate_blog_post(model, body)


@router.post("/social-posts", response_model=SocialPostOutput)
@limiter.limit("10/minute")
async def social_posts(
    request: Request, body: SocialPostInput, auth: ContentCreator, model: Model
):
    logger.info(f"POST /ai/social-posts | user={auth.user_id} | platforms={body.platforms}")
    return await generate_social_posts(model, body)


@router.post("/translate", response_model=TranslateOutput)
@limiter.limit("10/minute")
async def translate(request: Request, body: TranslateInput, auth: ContentCreator, model: Model):
    logger.info(f"POST /ai/translate | user={auth.user_id} | target={body.target_language}")
    return await translate_blog_content(model, body)
