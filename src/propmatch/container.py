"""
Construcción explícita de clientes y servicios.

Nada se importa como singleton global: el container crea cada cliente una
vez, lo inyecta donde se usa y lo cierra en `aclose()`.
"""

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
import structlog

from propmatch.cache import CacheStore, create_redis
from propmatch.config import Settings, get_settings
from propmatch.database import (
    DemandRepository,
    EmbeddingRepository,
    MatchRepository,
    PropertyRepository,
    SupabaseClient,
    create_supabase_client,
)
from propmatch.embeddings import (
    BaseEmbeddingProvider,
    EmbeddingSynchronizer,
    TokenBucketRateLimiter,
    get_embedding_provider,
)
from propmatch.hooks import MutationHooks, SyncWorkerPool
from propmatch.listings import ListingReadService
from propmatch.matching import MatchingEngine

logger = structlog.get_logger()


@dataclass
class Container:
    """Servicios del motor, listos para usar."""

    settings: Settings
    supabase: SupabaseClient
    redis_client: redis.Redis
    cache: CacheStore
    rate_limiter: TokenBucketRateLimiter
    provider: BaseEmbeddingProvider
    properties: PropertyRepository
    demands: DemandRepository
    embeddings: EmbeddingRepository
    matches: MatchRepository
    synchronizer: EmbeddingSynchronizer
    engine: MatchingEngine
    hooks: MutationHooks
    listings: ListingReadService

    def worker_pool(self) -> SyncWorkerPool:
        """Pool de workers para ejecutar hooks fuera del request."""
        return SyncWorkerPool(
            self.hooks,
            workers=self.settings.sync_workers,
            queue_size=self.settings.sync_queue_size,
        )

    async def aclose(self) -> None:
        await self.cache.close()

    async def __aenter__(self) -> "Container":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


async def build_container(settings: Optional[Settings] = None) -> Container:
    """
    Crea todos los clientes y servicios a partir de la configuración.

    Args:
        settings: Configuración (por defecto, la de entorno)
    """
    settings = settings or get_settings()

    supabase = await create_supabase_client(settings)
    redis_client = create_redis(settings)
    cache = CacheStore(redis_client, settings)

    rate_limiter = TokenBucketRateLimiter(
        settings.provider_rate_per_second, burst=settings.provider_burst
    )
    provider = get_embedding_provider(settings, rate_limiter)

    properties = PropertyRepository(supabase)
    demands = DemandRepository(supabase)
    embeddings = EmbeddingRepository(supabase)
    matches = MatchRepository(supabase)

    synchronizer = EmbeddingSynchronizer(provider, embeddings, properties, demands)
    engine = MatchingEngine(
        settings,
        demand_repo=demands,
        property_repo=properties,
        embedding_repo=embeddings,
        match_repo=matches,
        synchronizer=synchronizer,
        cache=cache,
    )

    logger.info(
        "Container inicializado",
        model=provider.model,
        dimension=provider.dimension,
        threshold=settings.match_threshold,
    )

    return Container(
        settings=settings,
        supabase=supabase,
        redis_client=redis_client,
        cache=cache,
        rate_limiter=rate_limiter,
        provider=provider,
        properties=properties,
        demands=demands,
        embeddings=embeddings,
        matches=matches,
        synchronizer=synchronizer,
        engine=engine,
        hooks=MutationHooks(synchronizer, matches, cache),
        listings=ListingReadService(properties, cache),
    )
