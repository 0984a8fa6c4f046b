"""Administrative catalog API router."""
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from auth import Actor, require_admin
from config import DEFAULT_PAGE_SIZE
from database import get_db
from dependencies import get_catalog_service
from schemas import (
    CategoryRequest,
    CategoryResponse,
    PagedResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
)
from services.catalog_service import CatalogService
from routers.products import product_page, product_response

router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Categories ---

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """List all categories (cached)."""
    return catalog_service.list_categories(db)


@router.get("/categories/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    return catalog_service.get_category(db, category_id)


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CategoryRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    return catalog_service.create_category(db, request.name, request.description)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    request: CategoryRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    return catalog_service.update_category(db, category_id, request.name, request.description)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """Delete a category that has no active products."""
    catalog_service.delete_category(db, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Products ---

@router.get("/products", response_model=PagedResponse[ProductResponse])
async def search_products(
    name: Optional[str] = Query(None),
    category_id: Optional[uuid.UUID] = Query(None),
    page_number: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    sort_by: Optional[str] = Query(None),
    is_ascending: bool = Query(False),
    include_inactive: bool = Query(True),
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """Search products, including deactivated ones unless told otherwise."""
    products, total = catalog_service.search_products(
        db,
        page_number,
        page_size,
        name=name,
        category_id=category_id,
        sort_by=sort_by,
        is_ascending=is_ascending,
        include_inactive=include_inactive,
    )
    return product_page(db, catalog_service, products, total, page_number, page_size)


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    product = catalog_service.create_product(
        db,
        request.name,
        request.description,
        request.price,
        request.stock_quantity,
        request.category_id,
    )
    return product_response(product, catalog_service.category_names(db, [product]))


@router.put("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    product = catalog_service.update_product(
        db,
        product_id,
        request.name,
        request.description,
        request.price,
        request.stock_quantity,
        request.category_id,
        request.is_active,
    )
    return product_response(product, catalog_service.category_names(db, [product]))


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """Soft delete a product."""
    catalog_service.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
