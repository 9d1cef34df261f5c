"""Dependency injection for services.

FastAPI caches ``get_db`` per request, so every service built for one request
shares the same session and therefore the same transaction.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from services.cart_service import CartService
from services.catalog_service import CatalogService, SqlCatalog
from services.order_service import OrderService


def get_catalog(db: Session = Depends(get_db)) -> SqlCatalog:
    """Get a catalog accessor bound to the request's session."""
    return SqlCatalog(db)


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    """Get catalog admin/browse service."""
    return CatalogService(db)


def get_cart_service(
    db: Session = Depends(get_db),
    catalog: SqlCatalog = Depends(get_catalog)
) -> CartService:
    """Get cart service instance."""
    return CartService(db, catalog)


def get_order_service(
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
) -> OrderService:
    """Get order service instance."""
    return OrderService(db, cart_service)
