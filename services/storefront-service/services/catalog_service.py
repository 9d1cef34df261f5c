"""Catalog access: product/category reads, stock decrements and catalog admin."""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from opentelemetry import trace

from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from database import transaction
from errors import CategoryNotFoundError, ConflictError, ProductNotFoundError
from models import CartItem, Category, OrderItem, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogProduct:
    """Read-only product view handed to the cart and checkout engines."""
    id: int
    name: str
    price: Decimal
    stock: int
    image_url: Optional[str] = None


@dataclass(frozen=True)
class CatalogCategory:
    id: int
    name: str


class CatalogAccessor(ABC):
    """The catalog operations the cart and checkout engines depend on."""

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[CatalogProduct]:
        """Return the current product state, or ``None`` if it does not exist."""

    @abstractmethod
    def get_category(self, category_id: int) -> Optional[CatalogCategory]:
        """Return the category, or ``None`` if it does not exist."""

    @abstractmethod
    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Atomically take ``quantity`` units out of stock.

        Returns False, without changing anything, when the product has fewer
        than ``quantity`` units left.
        """


class SqlCatalog(CatalogAccessor):
    """Catalog accessor bound to a session, so decrements join its transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.tracer = trace.get_tracer(__name__)

    def get_product(self, product_id: int) -> Optional[CatalogProduct]:
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            row = self.db.execute(
                select(Product.id, Product.name, Product.price, Product.stock, Product.image_url)
                .where(Product.id == product_id)
            ).first()

            db_span.set_attribute("db.rows_returned", 1 if row else 0)

        if row is None:
            return None
        return CatalogProduct(
            id=row.id,
            name=row.name,
            price=Decimal(row.price),
            stock=row.stock,
            image_url=row.image_url
        )

    def get_category(self, category_id: int) -> Optional[CatalogCategory]:
        category = self.db.get(Category, category_id)
        if category is None:
            return None
        return CatalogCategory(id=category.id, name=category.name)

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        with self.tracer.start_as_current_span("db.query.decrement_stock") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)
            db_span.set_attribute("quantity", quantity)

            # The row lock taken by this UPDATE serializes concurrent checkouts
            result = self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )

            db_span.set_attribute("db.rows_affected", result.rowcount)

        return result.rowcount == 1


def _product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "stock": product.stock,
        "category_id": product.category_id,
        "category": (
            {"id": product.category.id, "name": product.category.name}
            if product.category else None
        ),
        "image_url": product.image_url,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


def _category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
    }


def page_meta(total_items: int, page: int, page_size: int) -> Dict[str, int]:
    """Pagination block shared by every list endpoint."""
    return {
        "total_items": total_items,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total_items / page_size) or 1,
    }


def normalize_paging(page: Optional[int], page_size: Optional[int]) -> tuple:
    page = max(page or 1, 1)
    page_size = min(page_size or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    return page, page_size


class CatalogService:
    """Catalog browsing and admin maintenance of categories and products."""

    def __init__(self, db: Session):
        self.db = db

    def list_categories(self, page: Optional[int] = None, page_size: Optional[int] = None) -> Dict[str, Any]:
        """List categories newest first, as ``{"data": [...], "meta": {...}}``."""
        page, page_size = normalize_paging(page, page_size)

        total_items = self.db.execute(select(func.count(Category.id))).scalar_one()
        categories = self.db.execute(
            select(Category)
            .order_by(Category.created_at.desc(), Category.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars().all()

        return {
            "data": [_category_to_dict(c) for c in categories],
            "meta": page_meta(total_items, page, page_size),
        }

    def _find_category_by_name(self, name: str, exclude_id: Optional[int] = None) -> Optional[Category]:
        query = select(Category).where(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        return self.db.execute(query).scalars().first()

    def count_products_in(self, category_id: int) -> int:
        return self.db.execute(
            select(func.count(Product.id)).where(Product.category_id == category_id)
        ).scalar_one()

    def count_order_references(self, product_id: int) -> int:
        return self.db.execute(
            select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
        ).scalar_one()

    def get_category(self, category_id: int) -> Dict[str, Any]:
        category = self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return _category_to_dict(category)

    def create_category(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        name = name.strip()
        if self._find_category_by_name(name) is not None:
            raise ConflictError("Category already exists", details={"name": name})

        category = Category(name=name, description=description.strip() if description else None)
        try:
            with transaction(self.db):
                self.db.add(category)
        except IntegrityError:
            raise ConflictError("Category already exists", details={"name": name})

        logger.info("Created category", extra={"category_id": category.id, "name": name})
        return _category_to_dict(category)

    def update_category(self, category_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Rename a category or change its description.

        Raises:
            CategoryNotFoundError: If the category does not exist
            ConflictError: If another category already has the name, ignoring case
        """
        category = self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)

        name = changes.get("name")
        if name is not None:
            name = name.strip()
            if self._find_category_by_name(name, exclude_id=category_id) is not None:
                raise ConflictError("Category already exists", details={"name": name})

        try:
            with transaction(self.db):
                if name is not None:
                    category.name = name
                if "description" in changes:
                    description = changes["description"]
                    category.description = description.strip() if description else None
        except IntegrityError:
            raise ConflictError("Category already exists", details={"name": name})

        logger.info("Updated category", extra={"category_id": category_id, "fields": sorted(changes)})
        return _category_to_dict(category)

    def delete_category(self, category_id: int) -> None:
        """
        Delete a category.

        Raises:
            CategoryNotFoundError: If the category does not exist
            ConflictError: While products still belong to the category
        """
        category = self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)

        in_use = self.count_products_in(category_id)
        if in_use:
            raise ConflictError(
                "Category still has products",
                details={"categoryId": category_id, "products": in_use}
            )

        try:
            with transaction(self.db):
                self.db.delete(category)
        except IntegrityError:
            # A product was added to the category after the check
            raise ConflictError("Category still has products", details={"categoryId": category_id})

        logger.info("Deleted category", extra={"category_id": category_id})

    def list_products(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        category_id: Optional[int] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        List products, newest first.

        Args:
            page: 1-based page number
            page_size: Items per page, capped at MAX_PAGE_SIZE
            category_id: Only products of this category
            min_price: Inclusive lower price bound
            max_price: Inclusive upper price bound
            search: Case-insensitive substring of the product name

        Returns:
            ``{"data": [...], "meta": {...}}``
        """
        page, page_size = normalize_paging(page, page_size)

        conditions = []
        if category_id is not None:
            conditions.append(Product.category_id == category_id)
        if min_price is not None:
            conditions.append(Product.price >= min_price)
        if max_price is not None:
            conditions.append(Product.price <= max_price)
        if search:
            conditions.append(Product.name.ilike(f"%{search.strip()}%"))

        total_items = self.db.execute(
            select(func.count(Product.id)).where(*conditions)
        ).scalar_one()
        products = self.db.execute(
            select(Product)
            .where(*conditions)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars().all()

        return {
            "data": [_product_to_dict(p) for p in products],
            "meta": page_meta(total_items, page, page_size),
        }

    def get_product(self, product_id: int) -> Dict[str, Any]:
        product = self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return _product_to_dict(product)

    def create_product(
        self,
        name: str,
        price: Decimal,
        stock: int,
        category_id: int,
        description: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> Dict[str, Any]:
        if self.db.get(Category, category_id) is None:
            raise CategoryNotFoundError(category_id)

        product = Product(
            name=name.strip(),
            description=description.strip() if description else None,
            price=price,
            stock=stock,
            category_id=category_id,
            image_url=image_url
        )
        with transaction(self.db):
            self.db.add(product)

        logger.info("Created product", extra={
            "product_id": product.id,
            "price": str(product.price),
            "stock": product.stock
        })
        return _product_to_dict(product)

    def update_product(self, product_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial update to a product.

        Price edits only affect future cart additions; cart lines and order
        lines keep the unit price they captured.
        """
        product = self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        category_id = changes.get("category_id")
        if category_id is not None and self.db.get(Category, category_id) is None:
            raise CategoryNotFoundError(category_id)

        with transaction(self.db):
            for field in ("name", "description", "price", "stock", "category_id", "image_url"):
                if field in changes:
                    setattr(product, field, changes[field])

        logger.info("Updated product", extra={
            "product_id": product_id,
            "fields": sorted(changes)
        })
        return _product_to_dict(product)

    def delete_product(self, product_id: int) -> None:
        product = self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        referenced = self.count_order_references(product_id)
        if referenced:
            raise ConflictError(
                "Product is referenced by existing orders",
                details={"productId": product_id}
            )

        try:
            with transaction(self.db):
                self.db.query(CartItem).filter(CartItem.product_id == product_id).delete(
                    synchronize_session=False
                )
                self.db.delete(product)
        except IntegrityError:
            # An order referencing the product was committed after the check
            raise ConflictError(
                "Product is referenced by existing orders",
                details={"productId": product_id}
            )

        logger.info("Deleted product", extra={"product_id": product_id})
