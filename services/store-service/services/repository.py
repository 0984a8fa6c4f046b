"""Catalog and order stores over a SQLAlchemy session.

Every repository built from the same session shares its transaction, so all
mutations made during one request are committed together by
``UnitOfWork.commit``.
"""
import logging
import uuid
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import ColumnElement, and_, func, select, true
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from config import MAX_PAGE_SIZE
from errors import InvalidInputError
from models import Base, Category, Order, Product, RefreshToken, User, utcnow

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def product_is_available() -> ColumnElement[bool]:
    """Predicate selecting products that can be listed and ordered."""
    return and_(Product.is_active.is_(True), Product.is_deleted.is_(False))


def _locked(stmt):
    # Rows already in the session are overwritten with the locked values
    return stmt.with_for_update().execution_options(populate_existing=True)


def check_paging(page_number: int, page_size: int) -> None:
    errors = []
    if page_number < 1:
        errors.append("Page number must be greater than or equal to 1.")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        errors.append(f"Page size must be between 1 and {MAX_PAGE_SIZE}.")
    if errors:
        raise InvalidInputError("One or more validation errors occurred.", errors)


class Repository(Generic[ModelT]):
    """Generic data access for one mapped model."""

    def __init__(self, db: Session, model: Type[ModelT]):
        self.db = db
        self.model = model
        self.tracer = trace.get_tracer(__name__)

    def _select(self, criteria: Sequence[ColumnElement[bool]], options: Sequence[Any] = ()):
        stmt = select(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        if options:
            stmt = stmt.options(*options)
        return stmt

    def get_by_id(self, entity_id: uuid.UUID) -> Optional[ModelT]:
        return self.db.get(self.model, entity_id)

    def first(
        self,
        *criteria: ColumnElement[bool],
        options: Sequence[Any] = (),
        for_update: bool = False
    ) -> Optional[ModelT]:
        stmt = self._select(criteria, options).limit(1)
        if for_update:
            stmt = _locked(stmt)
        return self.db.scalars(stmt).first()

    def list_by(
        self,
        *criteria: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        for_update: bool = False
    ) -> List[ModelT]:
        stmt = self._select(criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = _locked(stmt)
        return list(self.db.scalars(stmt))

    def list_by_ids(
        self,
        ids: Iterable[uuid.UUID],
        *criteria: ColumnElement[bool],
        for_update: bool = False
    ) -> List[ModelT]:
        """
        Batch lookup by primary key.

        Args:
            ids: Identifiers to fetch (duplicates are ignored)
            criteria: Extra filters
            for_update: Lock the selected rows until the transaction ends

        Returns:
            Matching entities ordered by id
        """
        id_list = sorted(set(ids))
        if not id_list:
            return []

        with self.tracer.start_as_current_span(f"db.query.list_{self.model.__tablename__}") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", self.model.__tablename__)
            db_span.set_attribute("db.for_update", for_update)

            stmt = self._select((self.model.id.in_(id_list), *criteria)).order_by(self.model.id)
            if for_update:
                stmt = _locked(stmt)
            rows = list(self.db.scalars(stmt))

            db_span.set_attribute("db.rows_returned", len(rows))
            return rows

    def lookup(self, ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, ModelT]:
        return {entity.id: entity for entity in self.list_by_ids(ids)}

    def exists(self, *criteria: ColumnElement[bool]) -> bool:
        stmt = select(self.model.id)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.db.scalar(stmt.limit(1)) is not None

    def add(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        return entity

    def update(self, entity: ModelT) -> ModelT:
        entity.updated_at = utcnow()
        self.db.add(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)

    def paged(
        self,
        criteria: Sequence[ColumnElement[bool]],
        page_number: int,
        page_size: int,
        order_by: Sequence[Any],
        options: Sequence[Any] = ()
    ) -> Tuple[List[ModelT], int]:
        """
        Fetch one page of entities and the total number of matches.

        Returns:
            Tuple of (items, total_count)
        """
        where = and_(true(), *criteria)

        with self.tracer.start_as_current_span(f"db.query.page_{self.model.__tablename__}") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", self.model.__tablename__)
            db_span.set_attribute("page.number", page_number)
            db_span.set_attribute("page.size", page_size)

            total = self.db.scalar(select(func.count()).select_from(self.model).where(where))
            stmt = (
                select(self.model)
                .where(where)
                .order_by(*order_by)
                .offset((page_number - 1) * page_size)
                .limit(page_size)
            )
            if options:
                stmt = stmt.options(*options)
            items = list(self.db.scalars(stmt))

            db_span.set_attribute("db.rows_returned", len(items))
            return items, total or 0


class OrderRepository(Repository[Order]):
    """Order store; items are always loaded together with their order."""

    def __init__(self, db: Session):
        super().__init__(db, Order)

    def get_with_items(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        """Load an order and its items; ``for_update`` locks the order row and refreshes it."""
        return self.first(Order.id == order_id, options=[selectinload(Order.items)], for_update=for_update)

    def paged_with_items(
        self,
        criteria: Sequence[ColumnElement[bool]],
        page_number: int,
        page_size: int
    ) -> Tuple[List[Order], int]:
        return self.paged(
            criteria,
            page_number,
            page_size,
            order_by=[Order.created_at.desc(), Order.id],
            options=[selectinload(Order.items)],
        )


class UnitOfWork:
    """Repositories sharing one session and one commit boundary."""

    def __init__(self, db: Session):
        self.db = db
        self.users: Repository[User] = Repository(db, User)
        self.refresh_tokens: Repository[RefreshToken] = Repository(db, RefreshToken)
        self.categories: Repository[Category] = Repository(db, Category)
        self.products: Repository[Product] = Repository(db, Product)
        self.orders = OrderRepository(db)

    def commit(self) -> None:
        """Commit pending changes, rolling back if the commit fails."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        self.db.rollback()
