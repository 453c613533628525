# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import os
import uuid
from decimal import Decimal
from typing import Generator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from storefront.main import app
from storefront.core import cache
from storefront.db.session import Base, engine as sync_engine
from storefront.db.session_async import AsyncSessionLocal
from storefront.domain.enums import CouponType
from storefront.models.coupon import Coupon
from storefront.models.customer import Customer
from storefront.models.product import Category, Product, ProductVariant
from storefront.services import catalog_service

# attributes stay readable after commit without another SELECT holding a lock
TestingSessionLocal = sessionmaker(bind=sync_engine, autoflush=False, autocommit=False, expire_on_commit=False)


# ---------- Fixtures ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create the tables once per test session."""
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    cache.get_cache().clear()
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    cache.get_cache().clear()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Short-lived sync session for seeding rows."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest_asyncio.fixture(scope="function")
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_db_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


# --- Seed factories ---

@pytest.fixture(scope="function")
def make_category(db_session: Session):
    def _make(name: str = "Shoes") -> Category:
        category = Category(name=f"{name}-{uuid.uuid4().hex[:6]}", active=True)
        db_session.add(category)
        db_session.commit()
        return category

    return _make


@pytest.fixture(scope="function")
def make_product(db_session: Session):
    def _make(
        *,
        stock: int = 10,
        price: str = "100.00",
        sale_price: str | None = None,
        weight: str = "1.000",
        active: bool = True,
        category: Category | None = None,
    ) -> Product:
        product = Product(
            sku=f"SKU-{uuid.uuid4().hex[:10]}",
            name="Test product",
            price=Decimal(price),
            sale_price=Decimal(sale_price) if sale_price else None,
            weight=Decimal(weight),
            active=active,
            category_id=category.id if category else None,
            stock_quantity=stock,
            reserved_quantity=0,
            available_quantity=stock,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope="function")
def make_variant(db_session: Session):
    def _make(product: Product, *, stock: int = 5, price: str | None = None, weight: str | None = None) -> ProductVariant:
        variant = ProductVariant(
            product_id=product.id,
            sku=f"VAR-{uuid.uuid4().hex[:10]}",
            name="Variant",
            price=Decimal(price) if price else None,
            weight=Decimal(weight) if weight else None,
            active=True,
            stock_quantity=stock,
            reserved_quantity=0,
            available_quantity=stock,
        )
        db_session.add(variant)
        db_session.commit()
        return variant

    return _make


@pytest.fixture(scope="function")
def make_coupon(db_session: Session):
    def _make(code: str | None = None, *, coupon_type: CouponType = CouponType.percentage, value: str = "10", **fields) -> Coupon:
        coupon = Coupon(
            code=(code or f"C{uuid.uuid4().hex[:8]}").upper(),
            type=coupon_type,
            value=Decimal(value),
            used_count=fields.pop("used_count", 0),
            per_user_limit=fields.pop("per_user_limit", None),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(coupon)
        db_session.commit()
        return coupon

    return _make


@pytest.fixture(scope="function")
def make_customer(db_session: Session):
    def _make(*, loyalty_level: int = 0) -> Customer:
        customer = Customer(email=f"buyer-{uuid.uuid4().hex[:8]}@example.com", full_name="Buyer", loyalty_level=loyalty_level)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope="function")
def read_stock():
    """Counters as committed, read through a fresh session."""

    async def _read(product_id: uuid.UUID, variant_id: uuid.UUID | None = None):
        async with AsyncSessionLocal() as session:
            level = await catalog_service.get_stock_level(session, product_id, variant_id)
        assert level.available_quantity == level.stock_quantity - level.reserved_quantity
        return level.stock_quantity, level.reserved_quantity, level.available_quantity

    return _read
