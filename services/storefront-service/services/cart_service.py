"""Cart management service."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from opentelemetry import trace

from database import transaction
from errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from models import CartItem
from monitoring import cart_additions_counter, cart_mutations_counter
from services.catalog_service import CatalogAccessor, CatalogProduct, SqlCatalog

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    """Quantize a monetary amount to cents."""
    return Decimal(value).quantize(CENTS)


def line_subtotal(unit_price, quantity: int) -> Decimal:
    return money(Decimal(unit_price) * quantity)


def product_summary(product_id: int, name: str, image_url: Optional[str]) -> Dict[str, Any]:
    return {"id": product_id, "name": name, "image_url": image_url}


class CartService:
    """
    Shopping cart engine.

    Each user has at most one line per product. Lines carry the unit price
    captured from the catalog when the product was last *added*; quantity
    updates leave that price alone.
    """

    def __init__(self, db: Session, catalog: Optional[CatalogAccessor] = None):
        """
        Initialize cart service.

        Args:
            db: Database session
            catalog: Catalog accessor; defaults to one bound to ``db``
        """
        self.db = db
        self.catalog = catalog or SqlCatalog(db)
        self.tracer = trace.get_tracer(__name__)

    def add_line(self, user_id: str, product_id: int, quantity: int) -> Dict[str, Any]:
        """
        Add a product to the user's cart.

        Re-adding a product merges into its existing line: the quantity
        accumulates and the price snapshot is replaced by the current catalog
        price. Only the requested quantity is checked against stock.

        Args:
            user_id: User identifier
            product_id: Product identifier
            quantity: Units to add

        Returns:
            The resulting cart line with product summary and subtotal

        Raises:
            InvalidQuantityError: If quantity is below 1
            ProductNotFoundError: If the product does not exist
            InsufficientStockError: If stock is below the requested quantity
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", quantity)

        if quantity < 1:
            raise InvalidQuantityError(quantity)

        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        if product.stock < quantity:
            logger.warning("Add to cart rejected: insufficient stock", extra={
                "user_id": user_id,
                "product_id": product_id,
                "quantity": quantity,
                "stock": product.stock
            })
            raise InsufficientStockError(product.id, product.name)

        try:
            with transaction(self.db):
                line, merged = self._upsert_line(user_id, product, quantity)
        except IntegrityError:
            # A concurrent request created the line first; merge into it
            logger.info("Cart line created concurrently, merging", extra={
                "user_id": user_id,
                "product_id": product_id
            })
            with transaction(self.db):
                line, merged = self._upsert_line(user_id, product, quantity)

        cart_additions_counter.add(1, {"merged": str(merged).lower()})

        logger.info("Added product to cart", extra={
            "user_id": user_id,
            "cart_item_id": line.id,
            "product_id": product_id,
            "product_name": product.name,
            "quantity": quantity,
            "line_quantity": line.quantity,
            "price_at_add": str(line.price_at_add)
        })

        return self._line_view(line, product_summary(product.id, product.name, product.image_url))

    def _upsert_line(self, user_id: str, product: CatalogProduct, quantity: int):
        with self.tracer.start_as_current_span("db.query.upsert_cart_item") as db_span:
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)
            db_span.set_attribute("product.id", product.id)

            line = self.db.execute(
                select(CartItem)
                .where(CartItem.user_id == user_id, CartItem.product_id == product.id)
                .with_for_update()
            ).scalar_one_or_none()

            if line is not None:
                db_span.set_attribute("db.operation", "UPDATE")
                line.quantity += quantity
                line.price_at_add = product.price
                self.db.flush()
                return line, True

            db_span.set_attribute("db.operation", "INSERT")
            line = CartItem(
                user_id=user_id,
                product_id=product.id,
                quantity=quantity,
                price_at_add=product.price
            )
            self.db.add(line)
            self.db.flush()
            return line, False

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        """
        Get user's cart contents.

        Args:
            user_id: User identifier

        Returns:
            Lines in the order they were created, with ``total`` and ``item_count``
        """
        return self.summarize(self.get_cart_items(user_id))

    def summarize(self, lines: List[CartItem]) -> Dict[str, Any]:
        """Cart view of the given lines: line views plus ``total`` and ``item_count``."""
        items = [self._line_view(line) for line in lines]

        return {
            "items": items,
            "total": money(sum((item["subtotal"] for item in items), Decimal("0"))),
            "item_count": sum(item["quantity"] for item in items),
        }

    def get_cart_items(self, user_id: str) -> List[CartItem]:
        """
        Get cart lines for user, oldest first.

        Args:
            user_id: User identifier

        Returns:
            List of cart items with their products loaded
        """
        with self.tracer.start_as_current_span("db.query.get_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            cart_items = self.db.execute(
                select(CartItem)
                .options(joinedload(CartItem.product))
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at.asc(), CartItem.id.asc())
            ).scalars().all()

            db_span.set_attribute("db.rows_returned", len(cart_items))

            return list(cart_items)

    def update_line(self, user_id: str, line_id: int, quantity: int) -> Dict[str, Any]:
        """
        Set the quantity of one of the user's cart lines.

        The price snapshot is left untouched.

        Raises:
            InvalidQuantityError: If quantity is below 1
            CartItemNotFoundError: If the line is absent or owned by someone else
            InsufficientStockError: If stock is below the new quantity
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        line = self.find_owned(line_id, user_id)
        if line is None:
            raise CartItemNotFoundError()

        product = self.catalog.get_product(line.product_id)
        if product is None:
            raise ProductNotFoundError(line.product_id)
        if product.stock < quantity:
            logger.warning("Cart update rejected: insufficient stock", extra={
                "user_id": user_id,
                "cart_item_id": line_id,
                "quantity": quantity,
                "stock": product.stock
            })
            raise InsufficientStockError(product.id, product.name)

        with transaction(self.db):
            line.quantity = quantity

        cart_mutations_counter.add(1, {"operation": "update"})
        logger.info("Updated cart line", extra={
            "user_id": user_id,
            "cart_item_id": line_id,
            "quantity": quantity
        })

        return self._line_view(line)

    def remove_line(self, user_id: str, line_id: int) -> None:
        """
        Remove one of the user's cart lines.

        Raises:
            CartItemNotFoundError: If the line is absent or owned by someone else
        """
        with transaction(self.db):
            result = self.db.execute(
                delete(CartItem)
                .where(CartItem.id == line_id, CartItem.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise CartItemNotFoundError()

        self.db.expire_all()
        cart_mutations_counter.add(1, {"operation": "remove"})
        logger.info("Removed cart line", extra={"user_id": user_id, "cart_item_id": line_id})

    def clear_cart(self, user_id: str) -> None:
        """
        Clear user's cart. Clearing an empty cart succeeds.

        Args:
            user_id: User identifier
        """
        with transaction(self.db):
            deleted_count = self.delete_lines(user_id)

        cart_mutations_counter.add(1, {"operation": "clear"})
        logger.info("Cleared cart", extra={"user_id": user_id, "deleted": deleted_count})

    def lock_lines(self, user_id: str) -> List[CartItem]:
        """
        Re-read the user's cart lines with row locks, inside the caller's transaction.

        Rows already in the session are refreshed, so quantities changed by
        other requests since they were first loaded are picked up.
        """
        with self.tracer.start_as_current_span("db.query.lock_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            cart_items = self.db.execute(
                select(CartItem)
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at.asc(), CartItem.id.asc())
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()

            db_span.set_attribute("db.rows_returned", len(cart_items))

            return list(cart_items)

    def delete_lines(self, user_id: str, line_ids: Optional[List[int]] = None) -> int:
        """
        Delete the user's cart lines inside the caller's transaction.

        Args:
            user_id: User identifier
            line_ids: Only delete these lines; ``None`` deletes the whole cart

        Returns:
            Number of lines deleted
        """
        with self.tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            query = select(CartItem).where(CartItem.user_id == user_id)
            if line_ids is not None:
                query = query.where(CartItem.id.in_(line_ids))
            cart_items = self.db.execute(query).scalars().all()

            for item in cart_items:
                self.db.delete(item)
            self.db.flush()

            db_span.set_attribute("db.rows_affected", len(cart_items))

            return len(cart_items)

    def find_owned(self, line_id: int, user_id: str) -> Optional[CartItem]:
        """Look a line up by id and owner in one query; foreign lines read as missing."""
        return self.db.execute(
            select(CartItem)
            .options(joinedload(CartItem.product))
            .where(CartItem.id == line_id, CartItem.user_id == user_id)
        ).scalar_one_or_none()

    def _line_view(self, line: CartItem, product: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if product is None:
            product = product_summary(line.product.id, line.product.name, line.product.image_url)
        return {
            "id": line.id,
            "product_id": line.product_id,
            "quantity": line.quantity,
            "price_at_add": money(line.price_at_add),
            "subtotal": line_subtotal(line.price_at_add, line.quantity),
            "product": product,
        }
