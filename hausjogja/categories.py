# categories.py
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hausjogja.auth import require_admin
from hausjogja.common import CamelModel, Pagination, create_slug, dump, success
from hausjogja.db import get_db
from hausjogja.models import Category, Product, User

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/categories", tags=["Categories"])


# --- Pydantic Schemas for Data Validation ---

class CategoryIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = None


class CategoryUpdate(CamelModel):
    """Merge-patch body: only the fields present are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    parent_id: Optional[int] = None


class CategoryOut(CamelModel):
    id: int
    name: str
    slug: str
    parent_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ProductBrief(CamelModel):
    """The subset of product fields shown inside a category."""
    id: int
    name: str
    slug: str
    price: float
    image: Optional[str] = None
    is_available: bool


# --- Query Helpers ---

async def count_products(db: AsyncSession, category_ids: Iterable[int]) -> Dict[int, int]:
    """Returns {category_id: number of products} for the given categories."""
    ids = list(category_ids)
    if not ids:
        return {}
    query = (
        select(Product.category_id, func.count(Product.id))
        .where(Product.category_id.in_(ids))
        .group_by(Product.category_id)
    )
    counts = {category_id: 0 for category_id in ids}
    for category_id, total in (await db.execute(query)).all():
        counts[category_id] = total
    return counts


def serialize_category(category: Category, counts: Optional[Dict[int, int]] = None, with_children: bool = False) -> dict:
    data = dump(CategoryOut.model_validate(category))
    if counts is not None:
        data["productCount"] = counts.get(category.id, 0)
    if with_children:
        data["children"] = [serialize_category(child, counts) for child in category.children]
    return data


async def get_category_or_404(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Category.id).where(Category.slug == slug)
    if exclude_id is not None:
        query = query.where(Category.id != exclude_id)
    return (await db.execute(query)).first() is not None


def _slug_for(name: str) -> str:
    slug = create_slug(name)
    if not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category name must contain letters or numbers",
        )
    return slug


async def _validate_parent(db: AsyncSession, parent_id: int, category_id: Optional[int] = None) -> None:
    """The parent must exist and must not be the category itself or one of its descendants."""
    parent = await db.get(Category, parent_id)
    if parent is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parent category not found")
    if category_id is None:
        return

    ancestor = parent
    while ancestor is not None:
        if ancestor.id == category_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A category cannot be its own parent or a parent of its ancestors",
            )
        ancestor = await db.get(Category, ancestor.parent_id) if ancestor.parent_id else None


# --- API Endpoints ---

@router.get("", summary="List top-level categories with their subcategories")
async def list_categories(
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Category)
        .where(Category.parent_id.is_(None))
        .options(selectinload(Category.children))
        .order_by(Category.created_at.desc(), Category.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    categories = (await db.execute(query)).scalars().all()
    total = (await db.execute(
        select(func.count(Category.id)).where(Category.parent_id.is_(None))
    )).scalar_one()

    ids: List[int] = []
    for category in categories:
        ids.append(category.id)
        ids.extend(child.id for child in category.children)
    counts = await count_products(db, ids)

    return success(
        [serialize_category(c, counts, with_children=True) for c in categories],
        pagination=pagination.meta(total),
    )


@router.get("/{category_id}", summary="Get a category with its subcategories and products")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    query = (
        select(Category)
        .where(Category.id == category_id)
        .options(selectinload(Category.children), selectinload(Category.products))
        .execution_options(populate_existing=True)
    )
    category = (await db.execute(query)).scalars().first()
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    counts = await count_products(db, [category.id, *(child.id for child in category.children)])
    data = serialize_category(category, counts, with_children=True)
    data["products"] = [dump(ProductBrief.model_validate(p)) for p in category.products]
    return success(data)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a category")
async def create_category(
    payload: CategoryIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    slug = _slug_for(payload.name)
    if await _slug_taken(db, slug):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")

    if payload.parent_id is not None:
        await _validate_parent(db, payload.parent_id)

    category = Category(name=payload.name, slug=slug, parent_id=payload.parent_id)
    db.add(category)
    await db.commit()
    await db.refresh(category)

    logger.info(f"Admin {admin.id} created category {category.slug}")
    return success(serialize_category(category))


@router.put("/{category_id}", summary="Update a category")
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = await get_category_or_404(db, category_id)
    fields = payload.model_fields_set

    if "name" in fields and payload.name is not None:
        slug = _slug_for(payload.name)
        if slug != category.slug and await _slug_taken(db, slug, exclude_id=category.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")
        category.name = payload.name
        category.slug = slug

    if "parent_id" in fields:
        if payload.parent_id is not None:
            await _validate_parent(db, payload.parent_id, category_id=category.id)
        category.parent_id = payload.parent_id

    await db.commit()
    await db.refresh(category)
    return success(serialize_category(category))


@router.delete("/{category_id}", summary="Delete an empty category")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = (
        select(Category)
        .where(Category.id == category_id)
        .options(selectinload(Category.children), selectinload(Category.products))
        .execution_options(populate_existing=True)
    )
    category = (await db.execute(query)).scalars().first()
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    if category.products or category.children:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete category with products or subcategories",
        )

    await db.delete(category)
    await db.commit()

    logger.info(f"Admin {admin.id} deleted category {category_id}")
    return success(message="Category deleted")
