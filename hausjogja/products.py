# products.py
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hausjogja.auth import get_settings, require_admin
from hausjogja.categories import CategoryOut, serialize_category
from hausjogja.common import CamelModel, Pagination, create_slug, dump, success
from hausjogja.db import get_db
from hausjogja.models import Category, Product, User
from hausjogja.settings import Settings
from hausjogja.uploads import PRODUCT_IMAGES, remove_image, save_image

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["Products"])


# --- Pydantic Schemas ---

class ProductOut(CamelModel):
    """Defines the structure of a product returned by our API."""
    id: int
    name: str
    slug: str
    price: float
    description: Optional[str] = None
    image: Optional[str] = None
    is_available: bool
    category_id: int
    created_at: datetime
    updated_at: datetime
    category: Optional[CategoryOut] = None


# --- Query Helpers ---

async def load_product(db: AsyncSession, *criteria) -> Optional[Product]:
    """Fetches one product with its category eagerly loaded."""
    query = (
        select(Product)
        .where(*criteria)
        .options(selectinload(Product.category))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(query)).scalars().first()


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Product.id).where(Product.slug == slug)
    if exclude_id is not None:
        query = query.where(Product.id != exclude_id)
    return (await db.execute(query)).first() is not None


def _slug_for(name: str) -> str:
    slug = create_slug(name)
    if not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product name must contain letters or numbers",
        )
    return slug


async def _ensure_category(db: AsyncSession, category_id: int) -> None:
    if await db.get(Category, category_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category not found")


def _serialize(product: Product) -> dict:
    return dump(ProductOut.model_validate(product))


# --- API Endpoints ---

@router.get("", summary="List products, optionally filtered by category slug or name")
async def list_products(
    category: Optional[str] = Query(None, description="Exact category slug"),
    search: Optional[str] = Query(None, description="Substring of the product name"),
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
):
    criteria = []
    if category:
        criteria.append(Category.slug == category)
    if search:
        criteria.append(Product.name.contains(search, autoescape=True))

    query = (
        select(Product)
        .join(Product.category)
        .where(*criteria)
        .options(selectinload(Product.category))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    products = (await db.execute(query)).scalars().all()
    total = (await db.execute(
        select(func.count(Product.id)).join(Product.category).where(*criteria)
    )).scalar_one()

    return success([_serialize(p) for p in products], pagination=pagination.meta(total))


@router.get("/category/{slug}", summary="List products of a category and its direct subcategories")
async def list_products_by_category(
    slug: str,
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Category)
        .where(Category.slug == slug)
        .options(selectinload(Category.children))
    )
    category = (await db.execute(query)).scalars().first()
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    # One level only: the category itself plus its immediate children.
    category_ids = [category.id, *(child.id for child in category.children)]

    products_query = (
        select(Product)
        .where(Product.category_id.in_(category_ids))
        .options(selectinload(Product.category))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    products = (await db.execute(products_query)).scalars().all()
    total = (await db.execute(
        select(func.count(Product.id)).where(Product.category_id.in_(category_ids))
    )).scalar_one()

    return success(
        [_serialize(p) for p in products],
        category=serialize_category(category, with_children=True),
        pagination=pagination.meta(total),
    )


@router.get("/{slug}", summary="Get a single product by slug")
async def get_product(slug: str, db: AsyncSession = Depends(get_db)):
    product = await load_product(db, Product.slug == slug)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return success(_serialize(product))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a product")
async def create_product(
    name: str = Form(..., min_length=1, max_length=255),
    price: float = Form(..., ge=0, allow_inf_nan=False),
    category_id: int = Form(..., alias="categoryId"),
    description: Optional[str] = Form(None),
    is_available: Optional[bool] = Form(None, alias="isAvailable"),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    """
    Creates a product from a multipart form. `isAvailable` defaults to
    true; the optional `image` file is stored under /uploads/products.
    """
    slug = _slug_for(name)
    if await _slug_taken(db, slug):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product already exists")
    await _ensure_category(db, category_id)

    image_path = await save_image(image, PRODUCT_IMAGES, settings)
    product = Product(
        name=name,
        slug=slug,
        price=float(price),
        description=description,
        image=image_path,
        is_available=True if is_available is None else is_available,
        category_id=category_id,
    )
    db.add(product)
    try:
        await db.commit()
    except Exception:
        remove_image(image_path, settings)
        raise

    logger.info(f"Admin {admin.id} created product {slug}")
    return success(_serialize(await load_product(db, Product.id == product.id)))


@router.put("/{product_id}", summary="Update a product")
async def update_product(
    product_id: int,
    name: Optional[str] = Form(None, min_length=1, max_length=255),
    price: Optional[float] = Form(None, ge=0, allow_inf_nan=False),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    description: Optional[str] = Form(None),
    is_available: Optional[bool] = Form(None, alias="isAvailable"),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    """Merge-patch: only the form fields that are sent change."""
    product = await db.get(Product, product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    if category_id is not None:
        await _ensure_category(db, category_id)
        product.category_id = category_id

    if name is not None:
        slug = _slug_for(name)
        if slug != product.slug and await _slug_taken(db, slug, exclude_id=product.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product already exists")
        product.name = name
        product.slug = slug

    if price is not None:
        product.price = float(price)
    if description is not None:
        product.description = description
    if is_available is not None:
        product.is_available = is_available

    old_image = None
    image_path = await save_image(image, PRODUCT_IMAGES, settings)
    if image_path:
        old_image = product.image
        product.image = image_path

    try:
        await db.commit()
    except Exception:
        remove_image(image_path, settings)
        raise

    # Old file goes only after the new path is committed.
    if old_image:
        remove_image(old_image, settings)

    return success(_serialize(await load_product(db, Product.id == product_id)))


@router.delete("/{product_id}", summary="Delete a product")
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    product = await db.get(Product, product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    image = product.image
    try:
        await db.delete(product)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product is part of existing orders; mark it unavailable instead",
        )

    remove_image(image, settings)
    logger.info(f"Admin {admin.id} deleted product {product_id}")
    return success(message="Product deleted")
