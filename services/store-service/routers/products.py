"""Products API router."""
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from opentelemetry import trace

from auth import Actor, get_current_actor
from config import DEFAULT_PAGE_SIZE
from database import get_db
from dependencies import get_catalog_service
from models import Product
from schemas import PagedResponse, ProductResponse
from services.catalog_service import CatalogService

router = APIRouter(prefix="/api/products", tags=["products"])


def product_response(product: Product, category_names: Dict[uuid.UUID, str]) -> ProductResponse:
    response = ProductResponse.model_validate(product)
    response.category_name = category_names.get(product.category_id)
    return response


def product_page(
    db: Session,
    catalog_service: CatalogService,
    products: List[Product],
    total: int,
    page_number: int,
    page_size: int
) -> PagedResponse[ProductResponse]:
    names = catalog_service.category_names(db, products)
    return PagedResponse[ProductResponse].build(
        [product_response(product, names) for product in products], total, page_number, page_size
    )


@router.get("", response_model=PagedResponse[ProductResponse])
async def search_products(
    name: Optional[str] = Query(None, description="Case-insensitive name fragment"),
    category_id: Optional[uuid.UUID] = Query(None),
    page_number: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    sort_by: Optional[str] = Query(None, description="name, price, stock or created"),
    is_ascending: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """Search the products that can currently be ordered."""
    products, total = catalog_service.search_products(
        db,
        page_number,
        page_size,
        name=name,
        category_id=category_id,
        sort_by=sort_by,
        is_ascending=is_ascending,
    )

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    span.set_attribute("product.total_count", total)

    return product_page(db, catalog_service, products, total, page_number, page_size)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    catalog_service: CatalogService = Depends(get_catalog_service)
):
    """Get an available product."""
    product = catalog_service.get_product(db, product_id)
    trace.get_current_span().set_attribute("product.id", str(product_id))
    return product_response(product, catalog_service.category_names(db, [product]))
