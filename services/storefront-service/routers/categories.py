"""Categories API router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from auth import Principal, require_admin
from dependencies import get_catalog_service
from schemas import CategoryCreate, CategoryListResponse, CategoryResponse, CategoryUpdate
from services.catalog_service import CatalogService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=CategoryListResponse)
def list_categories(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """List categories, newest first."""
    return catalog.list_categories(page=page, page_size=page_size)


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(category_id: int, catalog: CatalogService = Depends(get_catalog_service)):
    return catalog.get_category(category_id)


@router.post("", response_model=CategoryResponse, status_code=201)
def create_category(
    request: CategoryCreate,
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Create a category - admin only. Names are unique, ignoring case."""
    return catalog.create_category(request.name, request.description)


@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    request: CategoryUpdate,
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Update a category - admin only. Sending a null description clears it."""
    changes = {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field == "description"
    }
    return catalog.update_category(category_id, changes)


@router.delete("/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    principal: Principal = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Delete a category - admin only. Refused while products belong to it."""
    catalog.delete_category(category_id)
    return Response(status_code=204)
