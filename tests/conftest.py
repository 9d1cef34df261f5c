"""
Pytest configuration and fixtures for the storefront service tests.
"""
import os

# Set test environment before importing service modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OTEL_ENABLED"] = "false"
os.environ["PYROSCOPE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_DATA"] = "false"

from decimal import Decimal
from typing import Callable, Generator

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import SessionLocal, engine
from models import Base, Category, Product
from services.cart_service import CartService
from services.catalog_service import SqlCatalog
from services.order_service import OrderService

CUSTOMER_ID = "user-123"
OTHER_CUSTOMER_ID = "user-789"

CUSTOMER_HEADERS = {"Authorization": "Bearer user-token-123"}
OTHER_CUSTOMER_HEADERS = {"Authorization": "Bearer test-token-789"}
ADMIN_HEADERS = {"Authorization": "Bearer admin-token-456"}


@pytest.fixture(autouse=True)
def schema() -> Generator[None, None, None]:
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def category(db: Session) -> Category:
    category = Category(name="Electronics")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_product(db: Session, category: Category) -> Callable[..., Product]:
    """Factory for committed products."""
    def _make(name: str = "Widget", price: str = "10.00", stock: int = 10) -> Product:
        product = Product(name=name, price=Decimal(price), stock=stock, category_id=category.id)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def catalog(db: Session) -> SqlCatalog:
    return SqlCatalog(db)


@pytest.fixture
def cart_service(db: Session, catalog: SqlCatalog) -> CartService:
    return CartService(db, catalog)


@pytest.fixture
def order_service(db: Session, cart_service: CartService) -> OrderService:
    return OrderService(db, cart_service)


@pytest.fixture
def client():
    """HTTP client running the full application, lifespan included."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as test_client:
        yield test_client


def stock_of(db: Session, product_id: int) -> int:
    """Read stock straight from the table, bypassing the identity map."""
    return db.execute(select(Product.stock).where(Product.id == product_id)).scalar_one()
