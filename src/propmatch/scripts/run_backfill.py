"""
Script para generar embeddings faltantes.

Recorre propiedades y demandas activas sin embedding y las sincroniza,
respetando el rate limit compartido del proveedor. Solo puede haber una
instancia corriendo a la vez (lock en Redis).

Uso:
    python -m propmatch.scripts.run_backfill
    python -m propmatch.scripts.run_backfill --kinds property --limit 50
    python -m propmatch.scripts.run_backfill --all
"""

import argparse
import asyncio
import sys
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Iterable, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError, RedisError

from propmatch.config import Settings, get_settings
from propmatch.container import build_container
from propmatch.database import DemandRepository, EmbeddingRepository, PropertyRepository
from propmatch.embeddings import EmbeddingSynchronizer, SyncOutcome
from propmatch.errors import BackfillAlreadyRunningError, CacheError
from propmatch.logging_config import configure_logging
from propmatch.models import EntityKind

logger = structlog.get_logger()

LOCK_NAME = "lock:backfill"

EXIT_ALREADY_RUNNING = 2


@dataclass
class BackfillStats:
    """Contadores de una corrida del backfill."""

    success: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    def record(self, outcome: SyncOutcome) -> None:
        if outcome in (SyncOutcome.CREATED, SyncOutcome.UPDATED):
            self.success += 1
        elif outcome == SyncOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict:
        return asdict(self)


class BackfillJob:
    """
    Sincroniza embeddings de entidades activas que no los tienen.

    El ritmo lo marca el token bucket del proveedor (compartido con el sync
    interactivo) más una pausa mínima entre registros.
    """

    def __init__(
        self,
        settings: Settings,
        synchronizer: EmbeddingSynchronizer,
        property_repo: PropertyRepository,
        demand_repo: DemandRepository,
        embedding_repo: EmbeddingRepository,
        redis_client: redis.Redis,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.synchronizer = synchronizer
        self.property_repo = property_repo
        self.demand_repo = demand_repo
        self.embedding_repo = embedding_repo
        self.redis = redis_client
        self._sleep = sleep

    @property
    def lock_name(self) -> str:
        return f"{self.settings.cache_prefix}:{LOCK_NAME}"

    async def _pending_ids(
        self, kind: EntityKind, include_existing: bool
    ) -> list[str]:
        if kind == EntityKind.PROPERTY:
            active = await self.property_repo.list_active_ids()
        else:
            active = await self.demand_repo.list_active_ids()

        if include_existing:
            return active

        embedded = await self.embedding_repo.list_owner_ids(kind)
        return [entity_id for entity_id in active if entity_id not in embedded]

    async def _acquire_lock(self):
        lock = self.redis.lock(
            self.lock_name,
            timeout=self.settings.backfill_lock_ttl_seconds,
            blocking=False,
        )
        try:
            acquired = await lock.acquire(blocking=False)
        except RedisError as e:
            raise CacheError(f"No se pudo obtener el lock del backfill: {e}") from e

        if not acquired:
            raise BackfillAlreadyRunningError("Ya hay un backfill en ejecución")
        return lock

    async def _release_lock(self, lock) -> None:
        try:
            await lock.release()
        except (LockError, RedisError) as e:
            logger.warning("No se pudo liberar el lock del backfill", error=str(e))

    async def run(
        self,
        kinds: Iterable[EntityKind] = (EntityKind.PROPERTY, EntityKind.DEMAND),
        limit: Optional[int] = None,
        include_existing: bool = False,
    ) -> BackfillStats:
        """
        Ejecuta el backfill.

        Args:
            kinds: Tipos de entidad a procesar
            limit: Máximo de registros por tipo
            include_existing: Revisar también entidades con embedding (detecta
                cambios de modelo o contenido; las vigentes no llaman al proveedor)

        Raises:
            BackfillAlreadyRunningError: otra instancia tiene el lock
            CacheError: no se pudo hablar con Redis para tomar el lock
        """
        lock = await self._acquire_lock()
        stats = BackfillStats()

        try:
            for kind in kinds:
                kind = EntityKind(kind)
                pending = await self._pending_ids(kind, include_existing)
                if limit is not None:
                    pending = pending[:limit]

                logger.info("Backfill de embeddings", kind=kind.value, pending=len(pending))

                for entity_id in pending:
                    outcome = await self.synchronizer.sync(kind, entity_id)
                    stats.record(outcome)

                    if outcome == SyncOutcome.FAILED:
                        logger.warning(
                            "Falló embedding en backfill",
                            kind=kind.value,
                            entity_id=entity_id,
                        )

                    # Pausa solo si hubo llamada al proveedor
                    if outcome not in (SyncOutcome.UNCHANGED, SyncOutcome.NOT_FOUND):
                        await self._sleep(self.settings.backfill_delay_seconds)
        finally:
            await self._release_lock(lock)

        logger.info("Backfill completado", **stats.to_dict())
        return stats


async def run_backfill(
    kinds: list[EntityKind], limit: Optional[int], include_existing: bool
) -> BackfillStats:
    """Construye los servicios y ejecuta el backfill."""
    async with await build_container() as container:
        job = BackfillJob(
            container.settings,
            container.synchronizer,
            container.properties,
            container.demands,
            container.embeddings,
            container.redis_client,
        )
        return await job.run(kinds, limit=limit, include_existing=include_existing)


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Genera embeddings faltantes")
    parser.add_argument(
        "--kinds",
        nargs="+",
        choices=[kind.value for kind in EntityKind],
        default=[kind.value for kind in EntityKind],
        help="Tipos de entidad a procesar",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Máximo de registros por tipo",
    )
    parser.add_argument(
        "--all",
        dest="include_existing",
        action="store_true",
        help="Revisar también entidades que ya tienen embedding",
    )
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    logger.info("Iniciando backfill...", kinds=args.kinds, limit=args.limit)

    try:
        stats = asyncio.run(
            run_backfill(
                [EntityKind(kind) for kind in args.kinds],
                args.limit,
                args.include_existing,
            )
        )
        sys.exit(0 if stats.failed == 0 else 1)

    except BackfillAlreadyRunningError as e:
        logger.warning("Backfill no iniciado", reason=str(e))
        sys.exit(EXIT_ALREADY_RUNNING)
    except KeyboardInterrupt:
        logger.info("Backfill interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en backfill", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
