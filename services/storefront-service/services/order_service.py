"""Order management service."""
import enum
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from database import transaction
from errors import (
    EmptyCartError,
    InsufficientStockError,
    InternalError,
    OrderNotFoundError,
    ProductUnavailableError,
    ServiceError,
)
from models import Order, OrderItem, OrderStatus
from monitoring import (
    checkout_amount_histogram,
    checkout_counter,
    checkout_failures_counter,
    stock_conflicts_counter,
)
from services.cart_service import CartService, line_subtotal, money, product_summary
from services.catalog_service import CatalogAccessor, normalize_paging, page_meta

logger = logging.getLogger(__name__)


class CheckoutState(str, enum.Enum):
    STARTED = "started"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ABORTED = "aborted"


class OrderService:
    """Checkout of carts into orders, and order history queries."""

    def __init__(self, db: Session, cart_service: CartService, catalog: Optional[CatalogAccessor] = None):
        """
        Initialize order service.

        Args:
            db: Database session, shared with the cart service and catalog
            cart_service: Cart service instance
            catalog: Catalog accessor; defaults to the cart service's
        """
        self.db = db
        self.cart_service = cart_service
        self.catalog = catalog or cart_service.catalog
        self.tracer = trace.get_tracer(__name__)

    def create_order(self, user_id: str) -> Dict[str, Any]:
        """
        Turn the user's cart into a pending order.

        The order, its lines, the stock decrements and the cart clear are
        committed together or not at all. Order lines copy the cart's price
        snapshots, so later catalog price edits never change the order.

        Args:
            user_id: User identifier

        Returns:
            The created order with its lines

        Raises:
            EmptyCartError: If the cart has no lines
            ProductUnavailableError: If a cart product no longer exists
            InsufficientStockError: If stock cannot cover a line, either at
                revalidation or at the authoritative decrement
            InternalError: If the storage layer fails mid-transaction
        """
        span = trace.get_current_span()
        state = CheckoutState.STARTED
        span.set_attribute("checkout.state", state.value)

        try:
            cart = self.cart_service.get_cart(user_id)
            if not cart["items"]:
                raise EmptyCartError()

            state = CheckoutState.VALIDATING
            span.set_attribute("checkout.state", state.value)
            self._revalidate(cart)

            order, cart = self._place_order(user_id)
        except ServiceError as e:
            state = CheckoutState.ABORTED
            span.set_attribute("checkout.state", state.value)
            checkout_counter.add(1, {"status": "failed"})
            checkout_failures_counter.add(1, {"reason": e.kind})
            logger.warning("Checkout aborted", extra={
                "user_id": user_id,
                "reason": e.kind,
                "error": e.message
            })
            raise

        state = CheckoutState.COMMITTED
        span.set_attribute("checkout.state", state.value)
        span.set_attribute("order.id", order.id)

        checkout_counter.add(1, {"status": "completed"})
        checkout_amount_histogram.record(float(order.total))

        logger.info("Checkout completed", extra={
            "user_id": user_id,
            "order_id": order.id,
            "total": str(order.total),
            "item_count": cart["item_count"]
        })

        return self._order_view(order)

    def _revalidate(self, cart: Dict[str, Any]) -> None:
        """
        Re-read every cart product before writing anything.

        Advisory only: stock can still move before the decrement, which is
        the check that actually guards inventory.
        """
        for item in cart["items"]:
            product = self.catalog.get_product(item["product_id"])
            if product is None:
                raise ProductUnavailableError(item["product_id"], item["product"]["name"])
            if product.stock < item["quantity"]:
                raise InsufficientStockError(product.id, product.name)

    def _place_order(self, user_id: str) -> Tuple[Order, Dict[str, Any]]:
        """
        Write the order and its side effects in a single transaction.

        The order is built from the cart lines as locked inside the
        transaction, and only those lines are removed from the cart.

        Returns:
            The order and the cart view it was built from
        """
        try:
            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("db.operation", "INSERT")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("user.id", user_id)

                with transaction(self.db):
                    lines = self.cart_service.lock_lines(user_id)
                    if not lines:
                        raise EmptyCartError()
                    cart = self.cart_service.summarize(lines)
                    db_span.set_attribute("order.total", float(cart["total"]))

                    order = Order(
                        user_id=user_id,
                        total=cart["total"],
                        status=OrderStatus.PENDING
                    )
                    self.db.add(order)
                    self.db.flush()

                    for item in cart["items"]:
                        order.items.append(OrderItem(
                            product_id=item["product_id"],
                            quantity=item["quantity"],
                            price_at_time=item["price_at_add"]
                        ))
                    self.db.flush()

                    # Decrement in product order so overlapping checkouts lock rows consistently
                    for item in sorted(cart["items"], key=lambda i: i["product_id"]):
                        if not self.catalog.decrement_stock(item["product_id"], item["quantity"]):
                            stock_conflicts_counter.add(1, {"product_id": str(item["product_id"])})
                            raise InsufficientStockError(item["product_id"], item["product"]["name"])

                    self.cart_service.delete_lines(user_id, [line.id for line in lines])

                db_span.set_attribute("order.id", order.id)
        except OperationalError as e:
            logger.error("Checkout transaction failed in storage", extra={
                "user_id": user_id,
                "error": str(e)
            })
            raise InternalError("Checkout could not be completed") from e

        return order, cart

    def get_order(self, user_id: str, order_id: int) -> Dict[str, Any]:
        """
        Get one of the user's orders.

        Raises:
            OrderNotFoundError: If the order is absent or owned by someone else
        """
        with self.tracer.start_as_current_span("db.query.get_order") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            order = self.db.execute(
                select(Order)
                .options(selectinload(Order.items).selectinload(OrderItem.product))
                .where(Order.id == order_id, Order.user_id == user_id)
            ).scalar_one_or_none()

        if order is None:
            raise OrderNotFoundError()
        return self._order_view(order)

    def list_orders(
        self,
        user_id: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        status: Optional[OrderStatus] = None
    ) -> Dict[str, Any]:
        """
        List orders newest first.

        Args:
            user_id: Restrict to this user's orders; ``None`` lists everyone's
            page: 1-based page number
            page_size: Items per page
            status: Only orders in this status

        Returns:
            ``{"data": [...], "meta": {...}}``
        """
        page, page_size = normalize_paging(page, page_size)

        conditions = []
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if status is not None:
            conditions.append(Order.status == status)

        with self.tracer.start_as_current_span("db.query.list_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")

            total_items = self.db.execute(
                select(func.count(Order.id)).where(*conditions)
            ).scalar_one()
            orders = self.db.execute(
                select(Order)
                .options(selectinload(Order.items).selectinload(OrderItem.product))
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(page_size)
                .offset((page - 1) * page_size)
            ).scalars().all()

            db_span.set_attribute("db.rows_returned", len(orders))

        return {
            "data": [self._order_view(order) for order in orders],
            "meta": page_meta(total_items, page, page_size),
        }

    def _order_view(self, order: Order) -> Dict[str, Any]:
        return {
            "id": order.id,
            "user_id": order.user_id,
            "total": money(order.total),
            "status": OrderStatus(order.status).value,
            "items": [
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "price_at_time": money(item.price_at_time),
                    "subtotal": line_subtotal(item.price_at_time, item.quantity),
                    "product": product_summary(item.product.id, item.product.name, item.product.image_url),
                }
                for item in order.items
            ],
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }
