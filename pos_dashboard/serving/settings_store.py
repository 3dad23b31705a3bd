"""
POS Settings Store

Redis-backed store for console-wide settings, kept as one JSON document
(the same shape the web console persists). The dashboard only reads the
low-stock default from it, once per refresh.
"""

import json
from typing import Any, Dict, Optional

import structlog
from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from pos_dashboard.config import get_settings
from pos_dashboard.metrics.records import to_optional_int

logger = structlog.get_logger(__name__)

SETTINGS_KEY = "pos-settings-storage"
LEGACY_THRESHOLD_KEY = "pos-settings-low-stock-threshold"

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=True,
    )

    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class SettingsStore:
    """
    Console settings persisted in Redis.

    Reads never fail: an unreachable store or a malformed document yields
    the built-in defaults.

    Example:
        store = SettingsStore(get_redis())
        threshold = await store.get_low_stock_threshold()
    """

    def __init__(self, client: Redis, default_threshold: Optional[int] = None):
        self._client = client
        self.default_threshold = (
            default_threshold
            if default_threshold is not None
            else get_settings().dashboard.default_low_stock_threshold
        )

    async def _load(self) -> Dict[str, Any]:
        raw = await self._client.get(SETTINGS_KEY)
        if not raw:
            return {}
        try:
            document = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed settings document", error=str(e))
            return {}
        return document if isinstance(document, dict) else {}

    @staticmethod
    def _values(document: Dict[str, Any]) -> Dict[str, Any]:
        # The web console wraps values in a "state" envelope
        state = document.get("state")
        return state if isinstance(state, dict) else document

    async def get_low_stock_threshold(self) -> int:
        """Global low-stock default; 10 when unset, malformed or unreachable"""
        try:
            threshold = to_optional_int(self._values(await self._load()).get("lowStockThreshold"))
            if threshold is None:
                threshold = to_optional_int(await self._client.get(LEGACY_THRESHOLD_KEY))
        except RedisError as e:
            logger.warning("Settings store unavailable, using default threshold", error=str(e))
            return self.default_threshold

        if threshold is None:
            return self.default_threshold
        return threshold

    async def set_low_stock_threshold(self, threshold: int) -> None:
        """Persist the global low-stock default, keeping other settings"""
        if threshold < 0:
            raise ValueError("Low-stock threshold cannot be negative")
        document = await self._load() or {"state": {}, "version": 0}
        self._values(document)["lowStockThreshold"] = int(threshold)
        await self._client.set(SETTINGS_KEY, json.dumps(document))
        logger.info("Low-stock threshold updated", threshold=threshold)

