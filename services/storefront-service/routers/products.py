"""Products API router."""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response
from opentelemetry import trace

from auth import Principal, require_admin
from dependencies import get_catalog_service
from schemas import ProductCreate, ProductListResponse, ProductResponse, ProductUpdate
from services.catalog_service import CatalogService

router = APIRouter(prefix="/products", tags=["products"])

# Fields that may be explicitly cleared with null
NULLABLE_FIELDS = {"description", "image_url"}


@router.get("", response_model=ProductListResponse)
def list_products(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = Query(None, max_length=200),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    Browse the catalog.

    Examples:
    - GET /products?categoryId=1&maxPrice=100
    - GET /products?search=lap&page=2&pageSize=20
    """
    result = catalog.list_products(
        page=page,
        page_size=page_size,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        search=search
    )

    span = trace.get_current_span()
    span.set_attribute("product.count", len(result["data"]))

    return result


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: int = Path(..., description="Product ID"),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get product details."""
    return catalog.get_product(product_id)


@router.post("", response_model=ProductResponse, status_code=201)
def create_product(
    request: ProductCreate,
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Create a product - admin only."""
    return catalog.create_product(**request.model_dump())


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product(
    request: ProductUpdate,
    product_id: int = Path(..., description="Product ID"),
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Update a product - admin only. Existing cart and order prices are unaffected."""
    changes = {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }
    return catalog.update_product(product_id, changes)


@router.delete("/{product_id}", status_code=204)
def delete_product(
    product_id: int = Path(..., description="Product ID"),
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Delete a product - admin only. Refused while orders reference it."""
    catalog.delete_product(product_id)
    return Response(status_code=204)
