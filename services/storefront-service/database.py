"""Database connection and session management."""
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Generator, Iterator
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, DB_LOCK_TIMEOUT_MS, SEED_DATA
from models import Base, Category, Product

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool settings per backend; SQLite is only used for local runs and tests."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": 10,  # Moderate pool size for concurrent checkouts
        "max_overflow": 20,  # Overflow for burst traffic
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_timeout": 30,  # Wait max 30 seconds for a connection
    }


def create_db_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine configured for the given database URL."""
    db_engine = create_engine(url, **_engine_options(url))

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    elif db_engine.dialect.name == "postgresql":
        # Bound the wait on row locks so a stuck checkout fails instead of hanging
        @event.listens_for(db_engine, "connect")
        def _set_lock_timeout(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute(f"SET lock_timeout = {int(DB_LOCK_TIMEOUT_MS)}")
            cursor.close()

    return db_engine


engine = create_db_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a unit of work on ``db`` and commit it as a whole.

    Any exception raised inside the block rolls back every write made
    through the session and is re-raised unchanged.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise


SAMPLE_CATALOG = {
    "Electronics": [
        ("Laptop", Decimal("999.99"), 50),
        ("Smartphone", Decimal("599.99"), 100),
        ("Headphones", Decimal("99.99"), 200),
        ("Monitor", Decimal("299.99"), 75),
        ("Keyboard", Decimal("79.99"), 150),
        ("Mouse", Decimal("29.99"), 300),
        ("Webcam", Decimal("89.99"), 100),
    ],
    "Furniture": [
        ("Desk Chair", Decimal("199.99"), 30),
    ],
}


def seed_catalog(db: Session) -> None:
    """Insert the sample catalog when the products table is empty."""
    if db.query(Product).count() > 0:
        return

    with transaction(db):
        for category_name, products in SAMPLE_CATALOG.items():
            category = Category(name=category_name)
            db.add(category)
            db.flush()
            db.add_all([
                Product(name=name, price=price, stock=stock, category_id=category.id)
                for name, price, stock in products
            ])

    logger.info("Seeded database with sample products")


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    if not SEED_DATA:
        return

    db = SessionLocal()
    try:
        seed_catalog(db)
    finally:
        db.close()
