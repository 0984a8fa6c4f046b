"""Category and product management."""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from opentelemetry import trace

from errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from models import Category, Product, utcnow
from services.category_cache import CategoryCache
from services.repository import UnitOfWork, check_paging, product_is_available

logger = logging.getLogger(__name__)

PRODUCT_SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.price,
    "stock": Product.stock_quantity,
    "created": Product.created_at,
}


def category_payload(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
    }


class CatalogService:
    """Service for browsing and administering the catalog."""

    def __init__(self, category_cache: CategoryCache):
        """
        Initialize catalog service.

        Args:
            category_cache: Cache for the category list
        """
        self.category_cache = category_cache

    # --- Categories ---

    def list_categories(self, db: Session) -> List[Dict[str, Any]]:
        """Return all categories ordered by name, served from cache when possible."""
        cached = self.category_cache.get()
        if cached is not None:
            trace.get_current_span().set_attribute("cache.hit", True)
            return cached

        trace.get_current_span().set_attribute("cache.hit", False)
        categories = UnitOfWork(db).categories.list_by(
            Category.is_deleted.is_(False), order_by=[Category.name]
        )
        payload = [category_payload(category) for category in categories]
        self.category_cache.set(payload)
        return payload

    def get_category(self, db: Session, category_id: uuid.UUID) -> Category:
        category = UnitOfWork(db).categories.get_by_id(category_id)
        if category is None or category.is_deleted:
            raise NotFoundError("Category", category_id)
        return category

    def _ensure_unique_category_name(
        self,
        uow: UnitOfWork,
        name: str,
        exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        criteria = [func.lower(Category.name) == name.lower(), Category.is_deleted.is_(False)]
        if exclude_id is not None:
            criteria.append(Category.id != exclude_id)
        if uow.categories.exists(*criteria):
            raise ConflictError(f"A category named '{name}' already exists.")

    def create_category(self, db: Session, name: str, description: Optional[str]) -> Category:
        uow = UnitOfWork(db)
        name = name.strip()
        self._ensure_unique_category_name(uow, name)

        category = uow.categories.add(Category(id=uuid.uuid4(), name=name, description=description))
        uow.commit()
        self.category_cache.invalidate()

        logger.info("Category created", extra={"category_id": str(category.id), "category_name": name})
        return category

    def update_category(
        self,
        db: Session,
        category_id: uuid.UUID,
        name: str,
        description: Optional[str]
    ) -> Category:
        uow = UnitOfWork(db)
        category = self.get_category(db, category_id)
        name = name.strip()
        self._ensure_unique_category_name(uow, name, exclude_id=category.id)

        category.name = name
        category.description = description
        uow.categories.update(category)
        uow.commit()
        self.category_cache.invalidate()

        logger.info("Category updated", extra={"category_id": str(category.id)})
        return category

    def delete_category(self, db: Session, category_id: uuid.UUID) -> None:
        """
        Soft delete a category.

        Raises:
            InvalidStateError: If active products still reference the category
        """
        uow = UnitOfWork(db)
        category = self.get_category(db, category_id)
        if uow.products.exists(Product.category_id == category.id, product_is_available()):
            raise InvalidStateError("Cannot delete a category that still has active products.")

        category.is_deleted = True
        category.deleted_at = utcnow()
        uow.categories.update(category)
        uow.commit()
        self.category_cache.invalidate()

        logger.info("Category deleted", extra={"category_id": str(category.id)})

    # --- Products ---

    def search_products(
        self,
        db: Session,
        page_number: int,
        page_size: int,
        name: Optional[str] = None,
        category_id: Optional[uuid.UUID] = None,
        sort_by: Optional[str] = None,
        is_ascending: bool = False,
        include_inactive: bool = False
    ) -> Tuple[List[Product], int]:
        """
        Search products with optional filters and sorting.

        Args:
            db: Database session
            page_number: 1-based page
            page_size: Items per page
            name: Case-insensitive substring of the product name
            category_id: Category filter
            sort_by: One of name, price, stock, created (defaults to created)
            is_ascending: Sort direction
            include_inactive: Include deactivated products (admin only)

        Returns:
            Tuple of (products, total_count)
        """
        check_paging(page_number, page_size)
        criteria = [Product.is_deleted.is_(False)]
        if not include_inactive:
            criteria.append(product_is_available())
        if name and name.strip():
            criteria.append(func.lower(Product.name).contains(name.strip().lower(), autoescape=True))
        if category_id is not None:
            criteria.append(Product.category_id == category_id)

        column = PRODUCT_SORT_COLUMNS.get((sort_by or "").lower(), Product.created_at)
        order_by = [column.asc() if is_ascending else column.desc(), Product.id]

        return UnitOfWork(db).products.paged(criteria, page_number, page_size, order_by=order_by)

    def get_product(self, db: Session, product_id: uuid.UUID, include_inactive: bool = False) -> Product:
        product = UnitOfWork(db).products.get_by_id(product_id)
        if product is None or product.is_deleted or (not include_inactive and not product.is_active):
            raise NotFoundError("Product", product_id)
        return product

    def _ensure_unique_product_name(
        self,
        uow: UnitOfWork,
        name: str,
        category_id: uuid.UUID,
        exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        criteria = [
            func.lower(Product.name) == name.lower(),
            Product.category_id == category_id,
        ]
        if exclude_id is not None:
            criteria.append(Product.id != exclude_id)
        if uow.products.exists(*criteria):
            raise ConflictError(f"A product named '{name}' already exists in this category.")

    def create_product(
        self,
        db: Session,
        name: str,
        description: Optional[str],
        price: Decimal,
        stock_quantity: int,
        category_id: uuid.UUID
    ) -> Product:
        """
        Create an active product.

        Raises:
            NotFoundError: If the category does not exist
            ConflictError: If the category already has a product with this name
        """
        uow = UnitOfWork(db)
        self.get_category(db, category_id)
        name = name.strip()
        self._ensure_unique_product_name(uow, name, category_id)

        product = uow.products.add(Product(
            id=uuid.uuid4(),
            name=name,
            description=description,
            price=price,
            stock_quantity=stock_quantity,
            category_id=category_id,
            is_active=True
        ))
        uow.commit()

        logger.info("Product created", extra={
            "product_id": str(product.id),
            "product_name": name,
            "category_id": str(category_id)
        })
        return product

    def update_product(
        self,
        db: Session,
        product_id: uuid.UUID,
        name: str,
        description: Optional[str],
        price: Decimal,
        stock_quantity: int,
        category_id: uuid.UUID,
        is_active: bool
    ) -> Product:
        if price <= 0 or stock_quantity < 0:
            raise InvalidInputError("Price must be positive and stock cannot be negative.")

        uow = UnitOfWork(db)
        product = self.get_product(db, product_id, include_inactive=True)
        if category_id != product.category_id:
            self.get_category(db, category_id)
        name = name.strip()
        self._ensure_unique_product_name(uow, name, category_id, exclude_id=product.id)

        product.name = name
        product.description = description
        product.price = price
        product.stock_quantity = stock_quantity
        product.category_id = category_id
        product.is_active = is_active
        uow.products.update(product)
        try:
            uow.commit()
        except StaleDataError as e:
            raise ConflictError("The product was modified concurrently. Please retry.") from e

        logger.info("Product updated", extra={"product_id": str(product.id)})
        return product

    def delete_product(self, db: Session, product_id: uuid.UUID) -> None:
        """Soft delete: the product stays referenced by past orders."""
        uow = UnitOfWork(db)
        product = self.get_product(db, product_id, include_inactive=True)

        product.is_active = False
        product.is_deleted = True
        product.deleted_at = utcnow()
        uow.products.update(product)
        uow.commit()

        logger.info("Product deleted", extra={"product_id": str(product.id)})

    def category_names(self, db: Session, products: List[Product]) -> Dict[uuid.UUID, str]:
        lookup = UnitOfWork(db).categories.lookup(product.category_id for product in products)
        return {category_id: category.name for category_id, category in lookup.items()}
