"""Product catalogue routes: affiliate picks, creator merchandise and menu items."""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, HttpUrl, model_validator

from ..auth import AuthContext, require_role_check
from ..database import PRODUCTS_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..rbac import is_vendor

logger = get_logger("ajira.products")
router = APIRouter(prefix="/api/products", tags=["products"])

ProductType = Literal["affiliate", "creator", "restaurant-item"]

VendorUser = Annotated[AuthContext, Depends(require_role_check(is_vendor))]


# =============================================================================
# Request/Response Models
# =============================================================================


class AffiliateLink(BaseModel):
    vendor_name: str = Field(..., min_length=1, max_length=100)
    url: HttpUrl
    price_display: str = Field(..., min_length=1, max_length=50)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: str = Field(..., min_length=1, max_length=80)
    image_url: str | None = None
    product_type: ProductType
    price: float | None = Field(None, ge=0)
    tags: list[str] = Field(default_factory=list)
    links: list[AffiliateLink] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_type_fields(self):
        if self.product_type == "affiliate":
            if not self.links:
                raise ValueError("Affiliate products need at least one link")
        elif self.price is None:
            raise ValueError("Creator products and menu items need a price")
        return self


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=5000)
    category: str | None = Field(None, min_length=1, max_length=80)
    image_url: str | None = None
    price: float | None = Field(None, ge=0)
    tags: list[str] | None = None
    links: list[AffiliateLink] | None = None


class ProductResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    image_url: str | None = None
    product_type: ProductType
    vendor_id: str
    price: float | None = None
    tags: list[str] = []
    links: list[dict] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def list_products(
    db,
    category: str | None = None,
    product_type: str | None = None,
    vendor_id: str | None = None,
) -> list[dict]:
    query = db.table(PRODUCTS_TABLE).select("*")
    if category:
        query = query.ilike("category", category)
    if product_type:
        query = query.eq("product_type", product_type)
    if vendor_id:
        query = query.eq("vendor_id", vendor_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def get_product(db, product_id: str) -> dict | None:
    result = db.table(PRODUCTS_TABLE).select("*").eq("id", product_id).execute()
    return result.data[0] if result.data else None


async def get_products_by_ids(db, product_ids: list[str]) -> list[dict]:
    if not product_ids:
        return []
    result = db.table(PRODUCTS_TABLE).select("*").in_("id", list(set(product_ids))).execute()
    return result.data or []


async def create_product(db, vendor_id: str, product: ProductCreate) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "vendor_id": vendor_id,
        **product.model_dump(mode="json"),
        "created_at": now,
        "updated_at": now,
    }
    if product.product_type != "affiliate":
        data["links"] = []
    result = db.table(PRODUCTS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def update_product(db, product_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(PRODUCTS_TABLE).update(updates).eq("id", product_id).execute()
    return result.data[0] if result.data else None


async def delete_product(db, product_id: str) -> None:
    db.table(PRODUCTS_TABLE).delete().eq("id", product_id).execute()


async def _get_editable_product(db, product_id: str, auth: AuthContext) -> dict:
    product = await get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not auth.owns(product, "vendor_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own products",
        )
    return product


# =============================================================================
# Routes
# =============================================================================


@router.get("", response_model=list[ProductResponse])
async def list_products_endpoint(
    db: Database,
    category: str | None = Query(None),
    product_type: ProductType | None = Query(None, alias="type"),
    vendor_id: str | None = Query(None),
):
    return await list_products(db, category, product_type, vendor_id)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product_endpoint(product_id: str, db: Database):
    product = await get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_product_endpoint(
    request: Request, body: ProductCreate, auth: VendorUser, db: Database
):
    logger.info(f"POST /products | vendor={auth.user_id} | type={body.product_type}")
    created = await create_product(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product",
        )
    return created


@router.put("/{product_id}", response_model=ProductResponse)
@limiter.limit("30/minute")
async def update_product_endpoint(
    request: Request, product_id: str, body: ProductUpdate, auth: VendorUser, db: Database
):
    logger.info(f"PUT /products/{product_id} | user={auth.user_id}")
    await _get_editable_product(db, product_id, auth)
    updated = await update_product(db, product_id, body.model_dump(mode="json", exclude_none=True))
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update product",
        )
    return updated


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_product_endpoint(
    request: Request, product_id: str, auth: VendorUser, db: Database
):
    logger.info(f"DELETE /products/{product_id} | user={auth.user_id}")
    await _get_editable_product(db, product_id, auth)
    await delete_product(db, product_id)
