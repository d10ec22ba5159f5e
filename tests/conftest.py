from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from hausjogja.auth import create_access_token, get_password_hash
from hausjogja.common import create_slug
from hausjogja.db import Database
from hausjogja.models import Category, Product, Role, User
from hausjogja.server import create_app
from hausjogja.settings import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        JWT_SECRET="test-secret",
    )


@pytest.fixture
async def database(settings):
    database = Database(settings.DATABASE_URL)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def session(database):
    async with database.session_maker() as s:
        yield s


async def _create_user(session, name: str, email: str, role: Role, password: str = "secret123") -> User:
    user = User(name=name, email=email, password=get_password_hash(password), role=role)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def admin(session):
    return await _create_user(session, "Admin", "admin@hausjogja.com", Role.ADMIN)


@pytest.fixture
async def customer(session):
    return await _create_user(session, "Sari", "sari@hausjogja.com", Role.USER)


@pytest.fixture
async def other_customer(session):
    return await _create_user(session, "Budi", "budi@hausjogja.com", Role.USER)


def bearer(user: User, settings: Settings) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, settings)}"}


@pytest.fixture
def headers_for(settings):
    return lambda user: bearer(user, settings)


@pytest.fixture
def admin_headers(admin, settings):
    return bearer(admin, settings)


@pytest.fixture
def customer_headers(customer, settings):
    return bearer(customer, settings)


@pytest.fixture
def make_category(session):
    async def factory(name: str, parent: Optional[Category] = None) -> Category:
        category = Category(name=name, slug=create_slug(name), parent_id=parent.id if parent else None)
        session.add(category)
        await session.commit()
        return category
    return factory


@pytest.fixture
def make_product(session):
    async def factory(name: str, category: Category, price: float = 10000, is_available: bool = True) -> Product:
        product = Product(
            name=name,
            slug=create_slug(name),
            price=price,
            is_available=is_available,
            category_id=category.id,
        )
        session.add(product)
        await session.commit()
        return product
    return factory


@pytest.fixture
async def server_error_client(app):
    """Like `client`, but unhandled errors come back as the 500 response."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def failing_commit(monkeypatch):
    """Call to make every later AsyncSession.commit raise."""
    def install():
        async def commit(self):
            raise RuntimeError("database unavailable")
        monkeypatch.setattr(AsyncSession, "commit", commit)
    return install
