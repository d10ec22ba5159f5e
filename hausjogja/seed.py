# seed.py
"""
Seeds the database with the admin account and the HausJogja menu.

Safe to run repeatedly: rows whose email or slug already exist are left
untouched.

    python -m hausjogja.seed
"""
import asyncio
import logging
import os
import sys
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hausjogja.auth import get_password_hash
from hausjogja.common import create_slug
from hausjogja.db import Database
from hausjogja.models import Category, Product, Role, User
from hausjogja.settings import Settings, settings as default_settings

log = logging.getLogger(__name__)

TOP_LEVEL_CATEGORIES = ["Menu Haus", "Menu Haus Panas", "Menu Haus Makanan"]

SUBCATEGORIES = {
    "Menu Klasik": "menu-haus",
    "Menu Choco": "menu-haus",
    "Menu Boba": "menu-haus",
    "Menu Panas": "menu-haus-panas",
    "Roti Bakar": "menu-haus-makanan",
    "Roti Maryam": "menu-haus-makanan",
    "Menu Kukus": "menu-haus-makanan",
}

PRODUCTS = {
    "menu-klasik": [
        ("Thai Tea Small", 6000),
        ("Thai Tea Large", 9000),
        ("Green Thai Tea Small", 8000),
        ("Green Thai Tea Large", 10000),
        ("Ovaltine Medium", 12000),
        ("Ovaltine Large", 13000),
        ("Taro Medium", 12000),
        ("Taro Large", 13000),
        ("Oreo Medium", 12000),
        ("Oreo Large", 13000),
        ("MILO Green Tea Medium", 12000),
        ("MILO Green Tea Large", 13000),
    ],
    "menu-choco": [
        ("Choco Lava MILO Medium", 13000),
        ("Choco Lava MILO Large", 14000),
        ("Choco Hazelnut Medium", 13000),
        ("Choco Hazelnut Large", 14000),
        ("Choco Avocado Medium", 14000),
        ("Choco Avocado Large", 15000),
    ],
    "menu-boba": [
        ("Boba Brown Sugar Fresh Milk Medium", 14000),
        ("Boba Brown Sugar Fresh Milk Large", 17000),
        ("Boba Brown Sugar Milk Tea Medium", 14000),
        ("Boba Brown Sugar Milk Tea Large", 17000),
    ],
    "menu-panas": [
        ("Hot Lemon Tea", 10000),
        ("Hot Thai Tea", 11000),
        ("Hot Coffee", 14000),
        ("Hot Ovaltine", 14000),
        ("Hot Choco Lava MILO", 14000),
    ],
    "roti-bakar": [
        ("Bakar Coklat", 24000),
        ("Bakar Keju", 25000),
        ("Bakar Coklat Keju", 27000),
    ],
    "roti-maryam": [
        ("Maryam Coklat", 13000),
        ("Maryam Keju", 14000),
        ("Maryam Coklat Keju", 16000),
    ],
    "menu-kukus": [
        ("Kukus Coklat", 10000),
        ("Kukus Keju", 11000),
        ("Kukus Coklat Keju", 14000),
    ],
}


async def _get_or_create_category(db: AsyncSession, name: str, parent: Optional[Category] = None) -> Category:
    slug = create_slug(name)
    category = (await db.execute(select(Category).where(Category.slug == slug))).scalars().first()
    if category is None:
        category = Category(name=name, slug=slug, parent_id=parent.id if parent else None)
        db.add(category)
        await db.flush()
        log.info(f"Created category {slug}")
    return category


async def seed(db: AsyncSession, settings: Settings) -> Dict[str, int]:
    """Inserts missing seed rows and returns how many of each were created."""
    created = {"users": 0, "categories": 0, "products": 0}

    admin_email = os.getenv("ADMIN_EMAIL", "admin@hausjogja.com")
    admin = (await db.execute(select(User).where(User.email == admin_email))).scalars().first()
    if admin is None:
        db.add(User(
            name="Admin",
            email=admin_email,
            password=get_password_hash(os.getenv("ADMIN_PASSWORD", "admin123")),
            role=Role.ADMIN,
            image=settings.DEFAULT_PROFILE_IMAGE,
        ))
        created["users"] += 1
        log.info(f"Created admin user {admin_email}")

    existing_slugs = set((await db.execute(select(Category.slug))).scalars().all())
    categories: Dict[str, Category] = {}
    for name in TOP_LEVEL_CATEGORIES:
        category = await _get_or_create_category(db, name)
        categories[category.slug] = category
    for name, parent_slug in SUBCATEGORIES.items():
        category = await _get_or_create_category(db, name, parent=categories[parent_slug])
        categories[category.slug] = category
    created["categories"] = len(set(categories) - existing_slugs)

    existing_products = set((await db.execute(select(Product.slug))).scalars().all())
    for category_slug, items in PRODUCTS.items():
        for name, price in items:
            slug = create_slug(name)
            if slug in existing_products:
                continue
            db.add(Product(
                name=name,
                slug=slug,
                price=float(price),
                image=f"{settings.UPLOAD_URL_PREFIX}/products/{slug}.jpg",
                is_available=True,
                category_id=categories[category_slug].id,
            ))
            created["products"] += 1

    await db.commit()
    return created


async def run(settings: Settings) -> Dict[str, int]:
    database = Database(settings.DATABASE_URL)
    try:
        await database.create_all()
        async with database.session_maker() as session:
            return await seed(session, settings)
    finally:
        await database.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] [%(levelname)s] %(message)s")
    try:
        created = asyncio.run(run(default_settings))
    except Exception as e:
        log.exception(f"Seeding failed: {e}")
        sys.exit(1)
    log.info(f"Seeding complete: {created}")


if __name__ == "__main__":
    main()
