"""Cart API router."""
from fastapi import APIRouter, Depends, Response

from auth import Principal, get_current_principal
from dependencies import get_cart_service
from schemas import AddToCartRequest, CartItemResponse, CartResponse, UpdateCartItemRequest
from services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.post("", response_model=CartItemResponse, status_code=201)
def add_to_cart(
    request: AddToCartRequest,
    principal: Principal = Depends(get_current_principal),
    cart_service: CartService = Depends(get_cart_service)
):
    """Add item to cart, merging into an existing line for the same product."""
    return cart_service.add_line(
        user_id=principal.user_id,
        product_id=request.product_id,
        quantity=request.quantity
    )


@router.get("", response_model=CartResponse)
def get_cart(
    principal: Principal = Depends(get_current_principal),
    cart_service: CartService = Depends(get_cart_service)
):
    """Get user's cart."""
    return cart_service.get_cart(principal.user_id)


@router.patch("/{item_id}", response_model=CartItemResponse)
def update_cart_item(
    item_id: int,
    request: UpdateCartItemRequest,
    principal: Principal = Depends(get_current_principal),
    cart_service: CartService = Depends(get_cart_service)
):
    """Change the quantity of a cart line."""
    return cart_service.update_line(principal.user_id, item_id, request.quantity)


@router.delete("/{item_id}", status_code=204)
def remove_cart_item(
    item_id: int,
    principal: Principal = Depends(get_current_principal),
    cart_service: CartService = Depends(get_cart_service)
):
    """Remove a cart line."""
    cart_service.remove_line(principal.user_id, item_id)
    return Response(status_code=204)


@router.delete("", status_code=204)
def clear_cart(
    principal: Principal = Depends(get_current_principal),
    cart_service: CartService = Depends(get_cart_service)
):
    """Empty the cart. Always succeeds."""
    cart_service.clear_cart(principal.user_id)
    return Response(status_code=204)
