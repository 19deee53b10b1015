"""
Sincronizador de embeddings.

Mantiene el embedding de cada Property/DemandPost consistente con su
contenido actual, llamando al proveedor solo cuando el hash del texto de
búsqueda cambió.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import structlog

from propmatch.database import DemandRepository, EmbeddingRepository, PropertyRepository
from propmatch.embeddings.provider import BaseEmbeddingProvider
from propmatch.embeddings.text import build_searchable_text, content_hash, entity_kind
from propmatch.errors import ProviderUnavailableError
from propmatch.models import DemandPost, Embedding, EntityKind, Property

logger = structlog.get_logger()

Entity = Union[Property, DemandPost]


class SyncOutcome(str, Enum):
    """Resultado de una sincronización."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self in (SyncOutcome.CREATED, SyncOutcome.UPDATED, SyncOutcome.UNCHANGED)


@dataclass
class SyncResult:
    """Resultado de sincronizar una entidad ya cargada."""

    outcome: SyncOutcome
    embedding: Optional[Embedding] = None


class EmbeddingSynchronizer:
    """
    Crea, actualiza y borra embeddings de propiedades y demandas.

    Flujo de sync:
    1. Cargar la entidad (si no existe: NOT_FOUND, sin lanzar)
    2. Construir texto de búsqueda y su hash
    3. Si el embedding guardado tiene el mismo hash/modelo/dimensión: UNCHANGED
    4. Si no, llamar al proveedor; si falla: FAILED (el embedding viejo queda)
    5. Upsert del nuevo vector
    """

    def __init__(
        self,
        provider: BaseEmbeddingProvider,
        embedding_repo: EmbeddingRepository,
        property_repo: PropertyRepository,
        demand_repo: DemandRepository,
    ):
        self.provider = provider
        self.embedding_repo = embedding_repo
        self.property_repo = property_repo
        self.demand_repo = demand_repo

    async def _load(self, kind: EntityKind, owner_id: str) -> Optional[Entity]:
        if kind == EntityKind.PROPERTY:
            return await self.property_repo.get_by_id(owner_id)
        return await self.demand_repo.get_by_id(owner_id)

    def searchable_text(self, entity: Entity) -> str:
        """Texto exacto que se manda al proveedor para esta entidad."""
        return build_searchable_text(entity, max_chars=self.provider.max_chars)

    def is_current(
        self,
        embedding: Optional[Embedding],
        entity: Entity,
        text_hash: Optional[str] = None,
    ) -> bool:
        """Indica si un embedding guardado sigue siendo válido para la entidad."""
        if embedding is None:
            return False
        if text_hash is None:
            text_hash = content_hash(self.searchable_text(entity))
        if (
            embedding.model == self.provider.model
            and len(embedding.vector) != self.provider.dimension
        ):
            # Mismo modelo con otra dimensión: configuración inconsistente
            logger.error(
                "Embedding con dimensión inválida para el modelo configurado",
                kind=embedding.owner_kind.value,
                owner_id=embedding.owner_id,
                model=embedding.model,
                expected=self.provider.dimension,
                actual=len(embedding.vector),
            )
        return embedding.is_current(text_hash, self.provider.model, self.provider.dimension)

    async def current_embedding(self, entity: Entity) -> Optional[Embedding]:
        """Embedding vigente de una entidad cargada, sin llamar al proveedor."""
        embedding = await self.embedding_repo.get(entity_kind(entity), entity.id)
        return embedding if self.is_current(embedding, entity) else None

    async def sync_entity(self, entity: Entity, force: bool = False) -> SyncResult:
        """
        Sincroniza el embedding de una entidad ya cargada.

        Args:
            entity: Property o DemandPost
            force: Regenerar aunque el hash no haya cambiado
        """
        kind = entity_kind(entity)
        text = self.searchable_text(entity)
        text_hash = content_hash(text)

        try:
            existing = await self.embedding_repo.get(kind, entity.id)
        except Exception as e:
            logger.error(
                "Error leyendo embedding",
                kind=kind.value,
                owner_id=entity.id,
                error=str(e),
            )
            return SyncResult(SyncOutcome.FAILED, None)

        if not force and self.is_current(existing, entity, text_hash):
            logger.debug("Embedding ya actualizado", kind=kind.value, owner_id=entity.id)
            return SyncResult(SyncOutcome.UNCHANGED, existing)

        try:
            vector = await self.provider.embed(text)
        except ProviderUnavailableError as e:
            logger.warning(
                "No se pudo generar embedding",
                kind=kind.value,
                owner_id=entity.id,
                error=str(e),
            )
            return SyncResult(SyncOutcome.FAILED, None)

        embedding = Embedding(
            owner_kind=kind,
            owner_id=entity.id,
            vector=vector,
            content_hash=text_hash,
            model=self.provider.model,
            dimension=self.provider.dimension,
        )

        try:
            await self.embedding_repo.upsert(embedding)
        except Exception as e:
            logger.error(
                "Error guardando embedding",
                kind=kind.value,
                owner_id=entity.id,
                error=str(e),
            )
            return SyncResult(SyncOutcome.FAILED, None)

        outcome = SyncOutcome.UPDATED if existing is not None else SyncOutcome.CREATED
        logger.info(
            "Embedding sincronizado",
            kind=kind.value,
            owner_id=entity.id,
            outcome=outcome.value,
        )
        return SyncResult(outcome, embedding)

    async def sync(
        self, kind: EntityKind, owner_id: str, force: bool = False
    ) -> SyncOutcome:
        """
        Sincroniza el embedding de una entidad por ID.

        Los errores de lectura cuentan como FAILED; solo una dimensión
        inválida (error de configuración) se propaga.

        Returns:
            SyncOutcome (usar `.ok` para el resultado booleano)

        Raises:
            EmbeddingDimensionError: el proveedor devolvió otra dimensión
        """
        try:
            entity = await self._load(kind, owner_id)
        except Exception as e:
            logger.error(
                "Error cargando entidad para sync",
                kind=kind.value,
                owner_id=owner_id,
                error=str(e),
            )
            return SyncOutcome.FAILED

        if entity is None:
            logger.warning("Entidad no encontrada para sync", kind=kind.value, owner_id=owner_id)
            return SyncOutcome.NOT_FOUND

        result = await self.sync_entity(entity, force=force)
        return result.outcome

    async def sync_property(self, property_id: str, force: bool = False) -> SyncOutcome:
        return await self.sync(EntityKind.PROPERTY, property_id, force=force)

    async def sync_demand(self, demand_id: str, force: bool = False) -> SyncOutcome:
        return await self.sync(EntityKind.DEMAND, demand_id, force=force)

    async def delete_embedding(self, kind: EntityKind, owner_id: str) -> None:
        """Borra el embedding de una entidad. Idempotente."""
        await self.embedding_repo.delete(kind, owner_id)
        logger.info("Embedding borrado", kind=kind.value, owner_id=owner_id)
