"""
Hooks post-mutación y cola de sincronización.

El sistema de listings/demandas llama a estos hooks después de cada
escritura. Cada hook devuelve un HookResult que el caller puede esperar
directamente o encolar en el SyncWorkerPool. Un hook nunca lanza: una falla
de sync o de cache no debe bloquear la mutación original.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog

from propmatch.cache import CacheKeys, CacheStore
from propmatch.database import MatchRepository
from propmatch.embeddings import EmbeddingSynchronizer, SyncOutcome
from propmatch.errors import QueueFullError
from propmatch.models import EntityKind

logger = structlog.get_logger()


@dataclass
class HookResult:
    """Resultado de un hook post-mutación."""

    kind: EntityKind
    entity_id: str
    sync: Optional[SyncOutcome] = None
    invalidated: list[str] = field(default_factory=list)
    deleted: bool = False

    @property
    def ok(self) -> bool:
        if self.deleted:
            return True
        return self.sync is not None and self.sync.ok


class MutationHooks:
    """Mantiene embeddings, historial de matches y cache al día tras cada mutación."""

    def __init__(
        self,
        synchronizer: EmbeddingSynchronizer,
        match_repo: MatchRepository,
        cache: Optional[CacheStore] = None,
    ):
        self.synchronizer = synchronizer
        self.match_repo = match_repo
        self.cache = cache

    async def _invalidate_property(self, property_id: str) -> list[str]:
        if self.cache is None:
            return []

        keys = [
            CacheKeys.property(property_id),
            CacheKeys.search_pattern(),
            CacheKeys.property_stats(),
            CacheKeys.candidates_pattern(),
        ]
        for key in keys:
            await self.cache.invalidate(key)
        return keys

    async def _sync(self, kind: EntityKind, entity_id: str) -> SyncOutcome:
        try:
            return await self.synchronizer.sync(kind, entity_id)
        except Exception as e:
            logger.exception(
                "Error sincronizando embedding tras mutación",
                kind=kind.value,
                entity_id=entity_id,
                error=str(e),
            )
            return SyncOutcome.FAILED

    async def on_property_mutated(self, property_id: str) -> HookResult:
        """Propiedad creada o editada: invalida cache y resincroniza el embedding."""
        invalidated = await self._invalidate_property(property_id)
        outcome = await self._sync(EntityKind.PROPERTY, property_id)
        return HookResult(
            kind=EntityKind.PROPERTY,
            entity_id=property_id,
            sync=outcome,
            invalidated=invalidated,
        )

    async def on_demand_mutated(self, demand_id: str) -> HookResult:
        """Demanda creada o editada: resincroniza el embedding."""
        outcome = await self._sync(EntityKind.DEMAND, demand_id)
        return HookResult(kind=EntityKind.DEMAND, entity_id=demand_id, sync=outcome)

    async def on_entity_deleted(self, kind: EntityKind, entity_id: str) -> HookResult:
        """
        Entidad borrada: elimina su embedding, sus matches y su cache.

        Idempotente; llamar dos veces para la misma entidad no falla.
        """
        kind = EntityKind(kind)
        deleted = True

        try:
            await self.synchronizer.delete_embedding(kind, entity_id)
            if kind == EntityKind.PROPERTY:
                await self.match_repo.delete_for_property(entity_id)
            else:
                await self.match_repo.delete_for_demand(entity_id)
        except Exception as e:
            deleted = False
            logger.exception(
                "Error limpiando datos derivados de entidad borrada",
                kind=kind.value,
                entity_id=entity_id,
                error=str(e),
            )

        invalidated = []
        if kind == EntityKind.PROPERTY:
            invalidated = await self._invalidate_property(entity_id)

        logger.info(
            "Entidad borrada procesada",
            kind=kind.value,
            entity_id=entity_id,
            deleted=deleted,
        )
        return HookResult(
            kind=kind,
            entity_id=entity_id,
            invalidated=invalidated,
            deleted=deleted,
        )


Job = tuple[Callable[..., Awaitable[Any]], tuple, asyncio.Future]


class SyncWorkerPool:
    """
    Cola acotada + N workers que ejecutan los hooks fuera del request.

    enqueue_* devuelve un Future con el HookResult; si la cola está llena
    lanza QueueFullError y el caller decide (reintentar, ejecutar inline,
    o dejarlo para el backfill).
    """

    def __init__(self, hooks: MutationHooks, workers: int = 2, queue_size: int = 100):
        self.hooks = hooks
        self.worker_count = workers
        self._queue: asyncio.Queue[Job] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []
        self.jobs_processed = 0
        self.jobs_failed = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Lanza los workers. Llamar desde dentro del event loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"sync-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("Workers de sync iniciados", workers=self.worker_count)

    async def stop(self, drain: bool = True) -> None:
        """
        Detiene los workers.

        Args:
            drain: Esperar a que se procesen los trabajos encolados
        """
        if drain and self._tasks:
            await self._queue.join()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        # Trabajos que quedaron sin procesar
        while not self._queue.empty():
            _, _, future = self._queue.get_nowait()
            if not future.done():
                future.cancel()
            self._queue.task_done()

        logger.info(
            "Workers de sync detenidos",
            processed=self.jobs_processed,
            failed=self.jobs_failed,
        )

    def _submit(self, handler: Callable[..., Awaitable[Any]], *args) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        try:
            self._queue.put_nowait((handler, args, future))
        except asyncio.QueueFull:
            logger.warning("Cola de sync llena", size=self._queue.maxsize)
            raise QueueFullError(f"Cola de sync llena ({self._queue.maxsize})")
        return future

    def enqueue_property(self, property_id: str) -> asyncio.Future:
        return self._submit(self.hooks.on_property_mutated, property_id)

    def enqueue_demand(self, demand_id: str) -> asyncio.Future:
        return self._submit(self.hooks.on_demand_mutated, demand_id)

    def enqueue_delete(self, kind: EntityKind, entity_id: str) -> asyncio.Future:
        return self._submit(self.hooks.on_entity_deleted, kind, entity_id)

    async def _worker(self, index: int) -> None:
        while True:
            handler, args, future = await self._queue.get()
            try:
                result = await handler(*args)
                self.jobs_processed += 1
                if not future.done():
                    future.set_result(result)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                self.jobs_failed += 1
                logger.error("Trabajo de sync falló", worker=index, error=str(e))
                if not future.done():
                    future.set_exception(e)
            finally:
                self._queue.task_done()
