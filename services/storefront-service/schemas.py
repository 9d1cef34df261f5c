"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from models import OrderStatus

# Amounts are exact decimals internally and plain JSON numbers on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


class ErrorResponse(BaseModel):
    """Error envelope for every non-2xx response."""
    kind: str
    message: str
    details: Optional[Any] = None


class PageMeta(CamelModel):
    total_items: int
    page: int
    page_size: int
    total_pages: int


class ProductSummary(CamelModel):
    """Product fields denormalized into cart and order lines."""
    id: int
    name: str
    image_url: Optional[str] = None


class CategoryCreate(CamelModel):
    """Schema for creating a category."""
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None


class CategoryUpdate(CamelModel):
    """Partial category update; only the fields sent are changed."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None


class CategoryResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CategoryListResponse(CamelModel):
    data: List[CategoryResponse]
    meta: PageMeta


class CategoryRef(CamelModel):
    id: int
    name: str


class ProductCreate(CamelModel):
    """Schema for creating a product."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(ge=0)
    category_id: int
    image_url: Optional[str] = None


class ProductUpdate(CamelModel):
    """Partial product update; only the fields sent are changed."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    image_url: Optional[str] = None


class ProductResponse(CamelModel):
    """Schema for product response."""
    id: int
    name: str
    description: Optional[str] = None
    price: Money
    stock: int
    category_id: int
    category: Optional[CategoryRef] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(CamelModel):
    data: List[ProductResponse]
    meta: PageMeta


class AddToCartRequest(CamelModel):
    """Schema for add to cart request."""
    product_id: int
    quantity: int = Field(ge=1)


class UpdateCartItemRequest(CamelModel):
    quantity: int = Field(ge=1)


class CartItemResponse(CamelModel):
    """Schema for cart item in response."""
    id: int
    product_id: int
    quantity: int
    price_at_add: Money
    subtotal: Money
    product: ProductSummary


class CartResponse(CamelModel):
    """Schema for cart response."""
    items: List[CartItemResponse]
    total: Money
    item_count: int


class OrderItemResponse(CamelModel):
    id: int
    product_id: int
    quantity: int
    price_at_time: Money
    subtotal: Money
    product: ProductSummary


class OrderResponse(CamelModel):
    """Schema for order response."""
    id: int
    user_id: str
    total: Money
    status: OrderStatus
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: datetime


class OrdersListResponse(CamelModel):
    """Schema for orders list response."""
    data: List[OrderResponse]
    meta: PageMeta
