"""Dependency injection for services."""
import redis
import httpx
from fastapi import Depends, Request

from services.auth_service import AuthService
from services.catalog_service import CatalogService
from services.category_cache import CategoryCache
from services.notification_service import NotificationClient
from services.order_service import OrderService
from services.token_service import TokenService


def get_redis(request: Request) -> redis.Redis:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get HTTP client from app state."""
    return request.app.state.http_client


def get_token_service() -> TokenService:
    """Get token service instance."""
    return TokenService()


def get_auth_service(token_service: TokenService = Depends(get_token_service)) -> AuthService:
    """Get auth service instance."""
    return AuthService(token_service)


def get_notification_client(http_client: httpx.AsyncClient = Depends(get_http_client)) -> NotificationClient:
    """Get notification client."""
    return NotificationClient(http_client)


def get_order_service(
    notification_client: NotificationClient = Depends(get_notification_client)
) -> OrderService:
    """Get order service instance."""
    return OrderService(notification_client)


def get_catalog_service(redis_client: redis.Redis = Depends(get_redis)) -> CatalogService:
    """Get catalog service instance."""
    return CatalogService(CategoryCache(redis_client))
