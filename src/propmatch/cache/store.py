"""
Capa cache-aside sobre Redis.

La base relacional es la fuente de verdad: el cache puede perder entradas
en cualquier momento. Cualquier error o timeout de Redis se loguea y se
trata como miss, nunca como error fatal.
"""

import asyncio
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as redis
import structlog
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from propmatch.config import Settings
from propmatch.errors import CacheError

logger = structlog.get_logger()

T = TypeVar("T")

# Errores de infraestructura que degradan a miss
_CACHE_FAILURES = (RedisError, asyncio.TimeoutError, OSError, CacheError)


class TTLClass(str, Enum):
    """Clases de expiración; los segundos concretos vienen de Settings."""

    SHORT = "short"  # lecturas de una entidad (cambian por contadores de vistas)
    MEDIUM = "medium"  # páginas de búsqueda
    LONG = "long"  # agregados casi estáticos
    DAY = "day"


def create_redis(settings: Settings) -> redis.Redis:
    """Crea el cliente de Redis con timeouts cortos."""
    return redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.cache_timeout_seconds,
        socket_connect_timeout=settings.cache_timeout_seconds,
    )


class CacheStore:
    """
    Wrapper get-or-set sobre Redis.

    Los misses concurrentes sobre la misma key no se coordinan: el loader
    puede ejecutarse más de una vez.
    """

    def __init__(self, client: redis.Redis, settings: Settings):
        self._redis = client
        self.prefix = settings.cache_prefix
        self.timeout = settings.cache_timeout_seconds
        self._ttls = {
            TTLClass.SHORT: settings.cache_ttl_short,
            TTLClass.MEDIUM: settings.cache_ttl_medium,
            TTLClass.LONG: settings.cache_ttl_long,
            TTLClass.DAY: settings.cache_ttl_day,
        }

    @property
    def redis(self) -> redis.Redis:
        return self._redis

    def ttl_for(self, ttl_class: TTLClass) -> int:
        """Segundos de expiración de una clase de TTL."""
        return self._ttls[TTLClass(ttl_class)]

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def _call(self, operation: Awaitable[T]) -> T:
        return await asyncio.wait_for(operation, timeout=self.timeout)

    async def get_raw(self, key: str) -> Optional[str]:
        """Lee el valor serializado; None si no existe o si Redis falla."""
        try:
            return await self._call(self._redis.get(self._full_key(key)))
        except _CACHE_FAILURES as e:
            logger.warning("Cache no disponible en lectura", key=key, error=str(e))
            return None

    async def set_raw(self, key: str, payload: str, ttl_class: TTLClass) -> bool:
        """Escribe un valor serializado; False si Redis falla."""
        try:
            await self._call(
                self._redis.set(self._full_key(key), payload, ex=self.ttl_for(ttl_class))
            )
            return True
        except _CACHE_FAILURES as e:
            logger.warning("Cache no disponible en escritura", key=key, error=str(e))
            return False

    async def get_or_set(
        self,
        key: str,
        ttl_class: TTLClass,
        loader: Callable[[], Awaitable[T]],
        model: Any = None,
    ) -> T:
        """
        Devuelve el valor cacheado o lo carga con `loader` y lo guarda.

        Args:
            key: Key lógica (sin prefijo)
            ttl_class: Clase de expiración
            loader: Corrutina que ejecuta la query real
            model: Tipo opcional (modelo pydantic, list[Model], etc.) para
                serializar y reconstruir el valor

        Returns:
            El valor, desde cache o desde el loader. Un None del loader no
            se cachea.
        """
        adapter = TypeAdapter(model) if model is not None else None

        raw = await self.get_raw(key)
        if raw is not None:
            try:
                value = adapter.validate_json(raw) if adapter else json.loads(raw)
                logger.debug("Cache hit", key=key)
                return value
            except (ValidationError, json.JSONDecodeError) as e:
                logger.warning("Valor cacheado ilegible, se recarga", key=key, error=str(e))

        logger.debug("Cache miss", key=key)
        value = await loader()
        if value is None:
            return value

        if adapter:
            payload = adapter.dump_json(value).decode("utf-8")
        else:
            payload = json.dumps(value, default=str)
        await self.set_raw(key, payload, ttl_class)
        return value

    async def invalidate(self, key_or_pattern: str) -> int:
        """
        Invalida una key exacta o todas las que matchean un patrón glob.

        Returns:
            Cantidad de keys borradas (0 si Redis falla)
        """
        full = self._full_key(key_or_pattern)
        try:
            if any(ch in key_or_pattern for ch in "*?["):
                return await self._call(self._delete_pattern(full))
            return await self._call(self._redis.delete(full))
        except _CACHE_FAILURES as e:
            logger.warning(
                "No se pudo invalidar cache", key=key_or_pattern, error=str(e)
            )
            return 0

    async def _delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch: list[str] = []
        async for key in self._redis.scan_iter(match=pattern, count=500):
            batch.append(key)
            if len(batch) >= 500:
                deleted += await self._redis.delete(*batch)
                batch = []
        if batch:
            deleted += await self._redis.delete(*batch)
        return deleted

    async def ping(self) -> bool:
        """Indica si Redis responde."""
        try:
            return bool(await self._call(self._redis.ping()))
        except _CACHE_FAILURES:
            return False

    async def close(self) -> None:
        await self._redis.aclose()
