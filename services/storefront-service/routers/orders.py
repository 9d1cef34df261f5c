"""Orders API router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import Principal, get_current_principal, require_admin
from dependencies import get_order_service
from models import OrderStatus
from schemas import OrderResponse, OrdersListResponse
from services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service)
):
    """Check out the caller's cart into a new pending order."""
    return order_service.create_order(principal.user_id)


@router.get("", response_model=OrdersListResponse)
def list_orders(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service)
):
    """Get user's orders, newest first."""
    return order_service.list_orders(principal.user_id, page=page, page_size=page_size)


@router.get("/all", response_model=OrdersListResponse)
def list_all_orders(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    principal: Principal = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Get every user's orders - admin only."""
    return order_service.list_orders(page=page, page_size=page_size, status=status)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service)
):
    """Get one of the caller's orders; other users' orders read as not found."""
    return order_service.get_order(principal.user_id, order_id)
