"""Domain exceptions raised by the store service.

Every business-rule violation is raised as a subclass of ``StoreError`` at the
point of detection. The HTTP layer translates the ``status_code`` of the
exception into the structured error body.
"""
from typing import List, Optional


class StoreError(Exception):
    """Base exception for all store errors."""

    status_code = 400

    def __init__(self, detail: str, errors: Optional[List[str]] = None):
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class InvalidInputError(StoreError):
    """Raised when request data is malformed or out of range."""

    status_code = 400


class NotFoundError(StoreError):
    """Raised when a referenced entity does not exist."""

    status_code = 400

    def __init__(self, entity: str, entity_id: Optional[object] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found.")


class UnauthorizedError(StoreError):
    """Raised when credentials or tokens are missing or invalid."""

    status_code = 401


class ForbiddenError(StoreError):
    """Raised when the actor is authenticated but lacks rights."""

    status_code = 403


class UnavailableError(StoreError):
    """Raised when a product exists but cannot be ordered."""

    status_code = 400

    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Product '{product_name}' is not available.")


class InsufficientStockError(StoreError):
    """Raised when a requested quantity exceeds the product's stock."""

    status_code = 400

    def __init__(self, product_name: str, requested: int, available: int):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock for product '{product_name}'.")


class InvalidStateError(StoreError):
    """Raised when an entity is not in a state that allows the operation."""

    status_code = 400


class ConflictError(StoreError):
    """Raised on duplicates and on concurrent modification of the same row."""

    status_code = 400
