"""Error taxonomy shared by the services and the HTTP layer.

Every error carries a stable machine-readable ``kind`` and a human message.
Ownership failures are raised as not-found errors so callers cannot test
for records that belong to someone else.
"""
from typing import Any, Optional


class ServiceError(Exception):
    """Base class for errors that are reported to the caller."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    kind = "ValidationError"
    status_code = 400


class InvalidQuantityError(ValidationError):
    kind = "InvalidQuantity"

    def __init__(self, quantity: int):
        super().__init__("Quantity must be at least 1", details={"quantity": quantity})


class NotFoundError(ServiceError):
    kind = "NotFound"
    status_code = 404


class ProductNotFoundError(NotFoundError):
    kind = "ProductNotFound"

    def __init__(self, product_id: int):
        super().__init__("Product not found", details={"productId": product_id})


class CategoryNotFoundError(NotFoundError):
    kind = "CategoryNotFound"

    def __init__(self, category_id: int):
        super().__init__("Category not found", details={"categoryId": category_id})


class CartItemNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Cart item not found")


class OrderNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Order not found")


class ConflictError(ServiceError):
    kind = "Conflict"
    status_code = 409


class BusinessRuleError(ServiceError):
    kind = "BusinessRule"
    status_code = 400


class InsufficientStockError(BusinessRuleError):
    kind = "InsufficientStock"

    def __init__(self, product_id: int, product_name: Optional[str] = None):
        label = product_name or f"product {product_id}"
        super().__init__(f"Insufficient stock for {label}", details={"productId": product_id})
        self.product_id = product_id


class EmptyCartError(BusinessRuleError):
    kind = "EmptyCart"

    def __init__(self):
        super().__init__("Cart is empty")


class ProductUnavailableError(BusinessRuleError):
    kind = "ProductUnavailable"

    def __init__(self, product_id: int, product_name: Optional[str] = None):
        label = product_name or f"Product {product_id}"
        super().__init__(f"{label} is no longer available", details={"productId": product_id})
        self.product_id = product_id


class InternalError(ServiceError):
    kind = "InternalError"
    status_code = 500
