"""Category, subcategory and tag routes.

Reads are public. Writes are admin-only.
"""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import AdminUser
from ..database import (
    CATEGORIES_TABLE,
    SUBCATEGORIES_TABLE,
    TAGS_TABLE,
    Database,
    delete_row,
    insert_row,
    update_row,
)
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..taxonomy import build_category_tree, slugify

logger = get_logger("ajira.categories")
router = APIRouter(prefix="/api", tags=["categories"])


# =============================================================================
# Request/Response Models
# =============================================================================


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    description: str | None = Field(None, max_length=500)


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=80)
    description: str | None = Field(None, max_length=500)


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    parent_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CategoryTreeNode(CategoryResponse):
    subcategories: list[CategoryResponse] = []


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)


class TagResponse(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def list_rows(db, table: str, parent_id: str | None = None) -> list[dict]:
    query = db.table(table).select("*")
    if parent_id:
        query = query.eq("parent_id", parent_id)
    result = query.order("name").execute()
    return result.data or []


async def get_row(db, table: str, id_or_slug: str, parent_id: str | None = None) -> dict | None:
    """Look a row up by id first, then by slug."""
    result = db.table(table).select("*").eq("id", id_or_slug).execute()
    if result.data:
        return result.data[0]
    query = db.table(table).select("*").eq("slug", id_or_slug)
    if parent_id:
        query = query.eq("parent_id", parent_id)
    result = query.execute()
    return result.data[0] if result.data else None


async def slug_taken(
    db, table: str, slug: str, exclude_id: str | None = None, parent_id: str | None = None
) -> bool:
    query = db.table(table).select("id").eq("slug", slug)
    if parent_id:
        query = query.eq("parent_id", parent_id)
    result = query.execute()
    return any(row["id"] != exclude_id for row in result.data or [])


async def delete_category(db, category_id: str) -> None:
    """Delete a category together with its subcategories."""
    db.table(SUBCATEGORIES_TABLE).delete().eq("parent_id", category_id).execute()
    db.table(CATEGORIES_TABLE).delete().eq("id", category_id).execute()


def _require_slug(name: str) -> str:
    slug = slugify(name)
    if not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name must contain at least one letter or digit",
        )
    return slug


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found")


def _failed(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}"
    )


# =============================================================================
# Category Routes
# =============================================================================


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(db: Database):
    return await list_rows(db, CATEGORIES_TABLE)


@router.get("/categories/tree", response_model=list[CategoryTreeNode])
async def category_tree(db: Database):
    categories = await list_rows(db, CATEGORIES_TABLE)
    subcategories = await list_rows(db, SUBCATEGORIES_TABLE)
    return build_category_tree(categories, subcategories)


@router.get("/categories/{id_or_slug}", response_model=CategoryResponse)
async def get_category(id_or_slug: str, db: Database):
    category = await get_row(db, CATEGORIES_TABLE, id_or_slug)
    if not category:
        raise _not_found("Category")
    return category


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_category(request: Request, body: CategoryCreate, auth: AdminUser, db: Database):
    logger.info(f"POST /categories | user={auth.user_id} | name={body.name}")
    slug = _require_slug(body.name)
    if await slug_taken(db, CATEGORIES_TABLE, slug):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A category with slug '{slug}' already exists",
        )

    created = await insert_row(
        db, CATEGORIES_TABLE, {"name": body.name, "slug": slug, "description": body.description}
    )
    if not created:
        raise _failed("create category")
    return created


@router.put("/categories/{category_id}", response_model=CategoryResponse)
@limiter.limit("30/minute")
async def update_category(
    request: Request, category_id: str, body: CategoryUpdate, auth: AdminUser, db: Database
):
    logger.info(f"PUT /categories/{category_id} | user={auth.user_id}")
    category = await get_row(db, CATEGORIES_TABLE, category_id)
    if not category:
        raise _not_found("Category")

    updates = body.model_dump(exclude_none=True)
    if "name" in updates:
        slug = _require_slug(updates["name"])
        if await slug_taken(db, CATEGORIES_TABLE, slug, exclude_id=category["id"]):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A category with slug '{slug}' already exists",
            )
        updates["slug"] = slug

    updated = await update_row(db, CATEGORIES_TABLE, category["id"], updates)
    if not updated:
        raise _failed("update category")
    return updated


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def remove_category(request: Request, category_id: str, auth: AdminUser, db: Database):
    logger.info(f"DELETE /categories/{category_id} | user={auth.user_id}")
    category = await get_row(db, CATEGORIES_TABLE, category_id)
    if not category:
        raise _not_found("Category")
    await delete_category(db, category["id"])


# =============================================================================
# Subcategory Routes
# =============================================================================


@router.get("/categories/{category_id}/subcategories", response_model=list[CategoryResponse])
async def list_subcategories(category_id: str, db: Database):
    category = await get_row(db, CATEGORIES_TABLE, category_id)
    if not category:
        raise _not_found("Category")
    return await list_rows(db, SUBCATEGORIES_TABLE, parent_id=category["id"])


@router.post(
    "/categories/{category_id}/subcategories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def create_subcategory(
    request: Request, category_id: str, body: CategoryCreate, auth: AdminUser, db: Database
):
    logger.info(f"POST /categories/{category_id}/subcategories | user={auth.user_id}")
    parent = await get_row(db, CATEGORIES_TABLE, category_id)
    if not parent:
        raise _not_found("Parent category")

    slug = _require_slug(body.name)
    if await slug_taken(db, SUBCATEGORIES_TABLE, slug, parent_id=parent["id"]):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A subcategory with slug '{slug}' already exists in this category",
        )

    created = await insert_row(
        db,
        SUBCATEGORIES_TABLE,
        {
            "name": body.name,
            "slug": slug,
            "description": body.description,
            "parent_id": parent["id"],
        },
    )
    if not created:
        raise _failed("create subcategory")
    return created


@router.put("/subcategories/{subcategory_id}", response_model=CategoryResponse)
@limiter.limit("30/minute")
async def update_subcategory(
    request: Request, subcategory_id: str, body: CategoryUpdate, auth: AdminUser, db: Database
):
    logger.info(f"PUT /subcategories/{subcategory_id} | user={auth.user_id}")
    sub = await get_row(db, SUBCATEGORIES_TABLE, subcategory_id)
    if not sub:
        raise _not_found("Subcategory")

    updates = body.model_dump(exclude_none=True)
    if "name" in updates:
        slug = _require_slug(updates["name"])
        if await slug_taken(
            db, SUBCATEGORIES_TABLE, slug, exclude_id=sub["id"], parent_id=sub["parent_id"]
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A subcategory with slug '{slug}' already exists in this category",
            )
        updates["slug"] = slug

    updated = await update_row(db, SUBCATEGORIES_TABLE, sub["id"], updates)
    if not updated:
        raise _failed("update subcategory")
    return updated


@router.delete("/subcategories/{subcategory_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def remove_subcategory(request: Request, subcategory_id: str, auth: AdminUser, db: Database):
    logger.info(f"DELETE /subcategories/{subcategory_id} | user={auth.user_id}")
    sub = await get_row(db, SUBCATEGORIES_TABLE, subcategory_id)
    if not sub:
        raise _not_found("Subcategory")
    await delete_row(db, SUBCATEGORIES_TABLE, sub["id"])


# =============================================================================
# Tag Routes
# =============================================================================


@router.get("/tags", response_model=list[TagResponse])
async def list_tags(db: Database):
    return await list_rows(db, TAGS_TABLE)


@router.get("/tags/{id_or_slug}", response_model=TagResponse)
async def get_tag(id_or_slug: str, db: Database):
    tag = await get_row(db, TAGS_TABLE, id_or_slug)
    if not tag:
        raise _not_found("Tag")
    return tag


@router.post("/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_tag(request: Request, body: TagCreate, auth: AdminUser, db: Database):
    logger.info(f"POST /tags | user={auth.user_id} | name={body.name}")
    slug = _require_slug(body.name)
    if await slug_taken(db, TAGS_TABLE, slug):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A tag with slug '{slug}' already exists",
        )
    created = await insert_row(db, TAGS_TABLE, {"name": body.name, "slug": slug})
    if not created:
        raise _failed("create tag")
    return created


@router.put("/tags/{tag_id}", response_model=TagResponse)
@limiter.limit("30/minute")
async def update_tag(request: Request, tag_id: str, body: TagCreate, auth: AdminUser, db: Database):
    logger.info(f"PUT /tags/{tag_id} | user={auth.user_id}")
    tag = await get_row(db, TAGS_TABLE, tag_id)
    if not tag:
        raise _not_found("Tag")
    slug = _require_slug(body.name)
    if await slug_taken(db, TAGS_TABLE, slug, exclude_id=tag["id"]):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A tag with slug '{slug}' already exists",
        )
    updated = await update_row(db, TAGS_TABLE, tag["id"], {"name": body.name, "slug": slug})
    if not updated:
        raise _failed("update tag")
    return updated


@router.delete("/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def remove_tag(request: Request, tag_id: str, auth: AdminUser, db: Database):
    logger.info(f"DELETE /tags/{tag_id} | user={auth.user_id}")
    tag = await get_row(db, TAGS_TABLE, tag_id)
    if not tag:
        raise _not_found("Tag")
    await delete_row(db, TAGS_TABLE, tag["id"])
