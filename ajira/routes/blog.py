"""Blog post routes."""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, require_roles
from ..database import POSTS_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..rbac import Role
from ..taxonomy import slugify, unique_slug

logger = get_logger("ajira.blog")
router = APIRouter(prefix="/api/blog", tags=["blog"])

PostStatus = Literal["draft", "published"]
RELATED_LIMIT = 3

AuthorUser = Annotated[AuthContext, Depends(require_roles(Role.creator, Role.admin))]


# =============================================================================
# Request/Response Models
# =============================================================================


class PostCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    content: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=80)
    subcategory: str | None = Field(None, max_length=80)
    tags: list[str] = Field(default_factory=list)
    image_url: str | None = None
    original_language: str = Field("en", min_length=2, max_length=10)
    status: PostStatus = "published"


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=200)
    content: str | None = Field(None, min_length=1)
    category: str | None = Field(None, min_length=1, max_length=80)
    subcategory: str | None = Field(None, max_length=80)
    tags: list[str] | None = None
    image_url: str | None = None
    original_language: str | None = Field(None, min_length=2, max_length=10)
    status: PostStatus | None = None


class PostResponse(BaseModel):
    id: str
    slug: str
    title: str
    author_id: str
    author_name: str | None = None
    content: str
    category: str
    subcategory: str | None = None
    tags: list[str] = []
    image_url: str | None = None
    original_language: str = "en"
    status: PostStatus
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def list_posts(
    db,
    category: str | None = None,
    tag: str | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """List published posts, newest first."""
    query = db.table(POSTS_TABLE).select("*").eq("status", "published")
    if category:
        query = query.ilike("category", category)
    if tag:
        query = query.contains("tags", [tag])
    if search:
        query = query.or_(f"title.ilike.%{search}%,content.ilike.%{search}%")
    result = query.order("published_at", desc=True).range(offset, offset + limit - 1).execute()
    return result.data or []


async def get_post_by_slug(db, slug: str) -> dict | None:
    result = db.table(POSTS_TABLE).select("*").eq("slug", slug).execute()
    return result.data[0] if result.data else None


async def get_post(db, post_id: str) -> dict | None:
    result = db.table(POSTS_TABLE).select("*").eq("id", post_id).execute()
    return result.data[0] if result.data else None


async def list_related_posts(db, post: dict, limit: int = RELATED_LIMIT) -> list[dict]:
    result = (
        db.table(POSTS_TABLE)
        .select("*")
        .eq("status", "published")
        .eq("category", post["category"])
        .neq("id", post["id"])
        .order("published_at", desc=True)
        .limit(limit)
        .execute()
    )
    return result.data or []


async def taken_slugs(db, base: str) -> set[str]:
    result = db.table(POSTS_TABLE).select("slug").like("slug", f"{base}%").execute()
    return {row["slug"] for row in result.data or []}


async def create_post(db, author_id: str, author_name: str | None, post: PostCreate) -> dict | None:
    base = slugify(post.title) or "post"
    slug = unique_slug(base, await taken_slugs(db, base))
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "slug": slug,
        "author_id": author_id,
        "author_name": author_name,
        **post.model_dump(),
        "published_at": now if post.status == "published" else None,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(POSTS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def update_post(db, post_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(POSTS_TABLE).update(updates).eq("id", post_id).execute()
    return result.data[0] if result.data else None


async def delete_post(db, post_id: str) -> None:
    db.table(POSTS_TABLE).delete().eq("id", post_id).execute()


# =============================================================================
# Routes
# =============================================================================


@router.get("/posts", response_model=list[PostResponse])
async def list_posts_endpoint(
    db: Database,
    category: str | None = Query(None),
    tag: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    return await list_posts(db, category, tag, search, limit, offset)


@router.get("/posts/{slug}", response_model=PostResponse)
async def get_post_endpoint(slug: str, db: Database):
    post = await get_post_by_slug(db, slug)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


@router.get("/posts/{slug}/related", response_model=list[PostResponse])
async def related_posts(slug: str, db: Database):
    post = await get_post_by_slug(db, slug)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return await list_related_posts(db, post)


@router.post("/posts", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_post_endpoint(
    request: Request,
    body: PostCreate,
    auth: AuthorUser,
    db: Database,
):
    logger.info(f"POST /blog/posts | user={auth.user_id} | title={body.title[:50]}")
    created = await create_post(db, auth.user_id, auth.name, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create post",
        )
    return created


@router.put("/posts/{post_id}", response_model=PostResponse)
@limiter.limit("30/minute")
async def update_post_endpoint(
    request: Request,
    post_id: str,
    body: PostUpdate,
    auth: AuthorUser,
    db: Database,
):
    logger.info(f"PUT /blog/posts/{post_id} | user={auth.user_id}")
    post = await get_post(db, post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    if not auth.owns(post, "author_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the author can edit this post",
        )

    updates = body.model_dump(exclude_none=True)
    if updates.get("status") == "published" and not post.get("published_at"):
        updates["published_at"] = utcnow().isoformat()

    updated = await update_post(db, post_id, updates)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update post",
        )
    return updated


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_post_endpoint(request: Request, post_id: str, auth: CurrentUser, db: Database):
    logger.info(f"DELETE /blog/posts/{post_id} | user={auth.user_id}")
    post = await get_post(db, post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    if not auth.owns(post, "author_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the author or an admin can delete this post",
        )
    await delete_post(db, post_id)
