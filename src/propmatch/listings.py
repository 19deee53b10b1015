"""
Lecturas de propiedades cacheadas (cache-aside).

La capa HTTP llama a estos métodos sin saber si hay cache: un Redis caído
solo agrega latencia.
"""

from typing import Optional

import structlog

from propmatch.cache import CacheKeys, CacheStore, TTLClass
from propmatch.database import PropertyRepository
from propmatch.errors import NotFoundError
from propmatch.models import Property, PropertySearchQuery

logger = structlog.get_logger()


class ListingReadService:
    """Lecturas de propiedades y búsquedas a través del cache."""

    def __init__(self, property_repo: PropertyRepository, cache: CacheStore):
        self.property_repo = property_repo
        self.cache = cache

    async def get_property(self, property_id: str) -> Property:
        """
        Obtiene una propiedad por ID.

        Raises:
            NotFoundError: la propiedad no existe (el miss no se cachea)
        """

        async def loader() -> Optional[Property]:
            return await self.property_repo.get_by_id(property_id)

        prop = await self.cache.get_or_set(
            CacheKeys.property(property_id), TTLClass.SHORT, loader, model=Property
        )
        if prop is None:
            raise NotFoundError("Property", property_id)
        return prop

    async def search_properties(self, query: PropertySearchQuery) -> list[Property]:
        """Página de resultados de búsqueda; la key ignora el orden de los filtros."""

        async def loader() -> list[Property]:
            return await self.property_repo.search(query)

        results = await self.cache.get_or_set(
            CacheKeys.property_search(query),
            TTLClass.MEDIUM,
            loader,
            model=list[Property],
        )
        logger.debug("Búsqueda de propiedades", page=query.page, results=len(results))
        return results

    async def property_type_stats(self) -> dict[str, int]:
        """Cantidad de propiedades activas por tipo."""
        return await self.cache.get_or_set(
            CacheKeys.property_stats(),
            TTLClass.LONG,
            self.property_repo.count_active_by_type,
            model=dict[str, int],
        )
