"""
Pytest configuration and shared fixtures for the Radeo Storefront tests.

Provides an in-memory SQLite session, an ASGI test client bound to that
session, signed-in customer/admin accounts and a sized product.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from main import app
from middleware.auth import issue_access_token
from middleware.rate_limit import limiter

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    ASGI test client with the in-memory database.

    Overrides the get_db dependency so routes and the test share a session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    limiter.reset()


# ── Accounts ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession):
    from services import auth_service

    user = await auth_service.register_user(
        db_session,
        email="asha@example.com",
        password="correct-horse",
        name="Asha Rao",
        phone="9876543210",
    )
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession):
    from services import auth_service

    user = await auth_service.register_user(
        db_session,
        email="vikram@example.com",
        password="battery-staple",
        name="Vikram Shah",
    )
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession):
    from services import auth_service

    user = await auth_service.register_user(
        db_session,
        email="admin@radeo.in",
        password="admin-password",
        name="Store Admin",
        role="admin",
    )
    await db_session.commit()
    return user


@pytest.fixture
def customer_headers(customer) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user_id=customer.id, role=customer.role)}"}


@pytest.fixture
def admin_headers(admin) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user_id=admin.id, role=admin.role)}"}


# ── Catalog ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def product(db_session: AsyncSession):
    """Running shoe in UK 7/8/9 with 5, 3 and 0 pairs."""
    from services import product_service

    p = await product_service.create_product(
        db_session,
        data={
            "name": "Trail Runner",
            "category": "Sneakers",
            "price": 1999.0,
            "compare_price": 2499.0,
            "colors": ["black", "olive"],
            "tags": ["Running"],
            "sizes": [
                {"size": "7", "stock": 5},
                {"size": "8", "stock": 3},
                {"size": "9", "stock": 0},
            ],
            "images": [{"url": "https://cdn.example.com/trail-1.jpg", "key": "trail-1"}],
        },
    )
    await db_session.commit()
    return p


@pytest_asyncio.fixture
async def cheap_product(db_session: AsyncSession):
    """Flip-flops without size rows; aggregate stock only."""
    from services import product_service

    p = await product_service.create_product(
        db_session,
        data={"name": "Beach Slides", "category": "Slides", "price": 299.0, "stock": 20},
    )
    await db_session.commit()
    return p


# ── Orders ───────────────────────────────────────────────────────────


@pytest.fixture
def shipping_address() -> dict:
    return {
        "name": "Asha Rao",
        "phone": "9876543210",
        "line1": "12 MG Road",
        "line2": "Flat 4B",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }


@pytest.fixture
def place_order(db_session: AsyncSession, shipping_address: dict):
    """Factory: fill the user's cart and check out."""
    from services import cart_service, order_service

    async def _place(user, lines, payment_method="cod", coupon_code=None):
        for product_id, size, quantity in lines:
            await cart_service.set_item(
                db_session, user_id=user.id, product_id=product_id, size=size, quantity=quantity
            )
        order = await order_service.create_order(
            db_session,
            user=user,
            shipping_address=shipping_address,
            payment_method=payment_method,
            coupon_code=coupon_code,
        )
        await db_session.commit()
        return order

    return _place
