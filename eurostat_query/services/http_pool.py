"""
Shared HTTP Client Pool Service

Provides one reusable httpx.AsyncClient for all Eurostat requests, with
connection pooling, keep-alive and timeouts taken from Settings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class HTTPClientPool:
    """
    Singleton HTTP client pool.

    The client is configured once from Settings on first use; call
    ``close()`` before changing the configuration.
    """

    _instance: Optional[HTTPClientPool] = None
    _client: Optional[httpx.AsyncClient] = None

    def __new__(cls) -> HTTPClientPool:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @staticmethod
    def _initialize_client(settings: Settings) -> None:
        """Create the shared AsyncClient."""
        limits = httpx.Limits(
            max_connections=settings.http_max_concurrency,
            max_keepalive_connections=settings.http_max_concurrency if settings.http_keep_alive else 0,
            keepalive_expiry=5.0,
        )

        timeout = httpx.Timeout(
            timeout=settings.http_timeout,
            connect=settings.http_connect_timeout,
        )

        HTTPClientPool._client = httpx.AsyncClient(
            limits=limits,
            timeout=timeout,
            http2=settings.http2,
            verify=True,
            follow_redirects=settings.http_follow_redirects,
            proxy=settings.http_proxy,
            headers={"User-Agent": settings.http_user_agent},
        )

        logger.info(
            "HTTP Client Pool initialized: "
            f"max_connections={settings.http_max_concurrency}, "
            f"keep_alive={settings.http_keep_alive}, timeout={settings.http_timeout}s"
        )

    @classmethod
    def get_client(cls, settings: Optional[Settings] = None) -> httpx.AsyncClient:
        """Get the shared HTTP client instance."""
        cls()
        if HTTPClientPool._client is None or HTTPClientPool._client.is_closed:
            HTTPClientPool._initialize_client(settings or get_settings())
        return HTTPClientPool._client

    @classmethod
    async def close(cls) -> None:
        """Close the shared HTTP client pool."""
        if HTTPClientPool._client:
            await HTTPClientPool._client.aclose()
            HTTPClientPool._client = None
            logger.info("HTTP Client Pool closed")

    @classmethod
    def get_stats(cls) -> Dict[str, Any]:
        """Get current pool configuration."""
        client = HTTPClientPool._client
        if client is None:
            return {"status": "not_initialized"}

        return {
            "status": "active",
            "is_closed": client.is_closed,
            "timeout": {
                "connect": client.timeout.connect,
                "read": client.timeout.read,
                "write": client.timeout.write,
            },
            "follow_redirects": client.follow_redirects,
        }


def get_http_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """
    Get the shared HTTP client pool.

    Use this instead of creating new AsyncClient instances.
    """
    return HTTPClientPool.get_client(settings)


async def close_http_pool() -> None:
    """Close the HTTP client pool (called on application shutdown)."""
    await HTTPClientPool.close()
