from sqlalchemy import select

from hausjogja.auth import verify_password
from hausjogja.models import Category, Product, Role, User
from hausjogja.seed import seed


async def test_seed_is_idempotent(session, settings):
    first = await seed(session, settings)
    assert first == {"users": 1, "categories": 10, "products": 36}

    second = await seed(session, settings)
    assert second == {"users": 0, "categories": 0, "products": 0}

    admin = (await session.execute(select(User).where(User.email == "admin@hausjogja.com"))).scalar_one()
    assert admin.role == Role.ADMIN
    assert verify_password("admin123", admin.password)


async def test_seeded_menu_structure(session, settings):
    await seed(session, settings)

    klasik = (await session.execute(select(Category).where(Category.slug == "menu-klasik"))).scalar_one()
    parent = await session.get(Category, klasik.parent_id)
    assert parent.slug == "menu-haus"

    thai_tea = (await session.execute(select(Product).where(Product.slug == "thai-tea-small"))).scalar_one()
    assert thai_tea.price == 6000
    assert thai_tea.category_id == klasik.id
    assert thai_tea.is_available is True
