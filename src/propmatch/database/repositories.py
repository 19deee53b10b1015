"""
Repositorios para operaciones CRUD en Supabase.

Cada repositorio maneja una tabla/entidad específica.
"""

from collections import Counter
from typing import Iterable, Optional

import structlog

from propmatch.database.supabase_client import SupabaseClient
from propmatch.models import (
    DemandPost,
    Embedding,
    EntityKind,
    HardConstraints,
    Match,
    MatchStatusUpdate,
    Property,
    PropertySearchQuery,
)

logger = structlog.get_logger()

SEARCH_COLUMNS = ("title", "description", "address", "district", "province")


def ilike_any_filter(columns: Iterable[str], term: str) -> str:
    """
    Filtro `or` de PostgREST: alguna columna contiene `term` (ilike).

    El valor va entre comillas dobles para que comas, puntos, dos puntos y
    paréntesis del texto libre no rompan la sintaxis del filtro.
    """
    escaped = term.strip().replace("\\", "\\\\").replace('"', '\\"')
    return ",".join(f'{column}.ilike."%{escaped}%"' for column in columns)


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, client: SupabaseClient):
        self._client = client

    @property
    def client(self) -> SupabaseClient:
        return self._client


class PropertyRepository(BaseRepository):
    """Repositorio de propiedades (solo lectura)."""

    TABLE = "properties"

    async def get_by_id(self, property_id: str) -> Optional[Property]:
        """Obtiene una propiedad por su ID."""
        response = await (
            self.client.table(self.TABLE)
            .select("*")
            .eq("id", property_id)
            .limit(1)
            .execute()
        )
        return Property.model_validate(response.data[0]) if response.data else None

    async def list_active(
        self, constraints: HardConstraints, limit: int = 200
    ) -> list[Property]:
        """
        Propiedades activas que cumplen los filtros hard.

        Returns:
            Lista ordenada por fecha de publicación (más nuevas primero)
        """
        query = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("status", "active")
            .eq("listing_type", constraints.listing_type)
        )

        if constraints.property_type:
            query = query.eq("property_type", constraints.property_type)
        if constraints.province:
            query = query.eq("province", constraints.province)
        if constraints.district:
            query = query.eq("district", constraints.district)
        if constraints.budget_min is not None:
            query = query.gte("price", constraints.budget_min)
        if constraints.budget_max is not None:
            query = query.lte("price", constraints.budget_max)
        if constraints.bedrooms_min is not None:
            query = query.gte("bedrooms", constraints.bedrooms_min)

        response = await query.order("created_at", desc=True).limit(limit).execute()
        return [Property.model_validate(row) for row in response.data]

    async def search(self, query: PropertySearchQuery) -> list[Property]:
        """Búsqueda paginada de propiedades activas."""
        builder = self.client.table(self.TABLE).select("*").eq("status", "active")

        if query.q and query.q.strip():
            builder = builder.or_(ilike_any_filter(SEARCH_COLUMNS, query.q))
        if query.property_type:
            builder = builder.eq("property_type", query.property_type)
        if query.listing_type:
            builder = builder.eq("listing_type", query.listing_type)
        if query.province:
            builder = builder.eq("province", query.province)
        if query.district:
            builder = builder.eq("district", query.district)
        if query.min_price is not None:
            builder = builder.gte("price", query.min_price)
        if query.max_price is not None:
            builder = builder.lte("price", query.max_price)
        if query.bedrooms_min is not None:
            builder = builder.gte("bedrooms", query.bedrooms_min)

        if query.sort == "price_asc":
            builder = builder.order("price")
        elif query.sort == "price_desc":
            builder = builder.order("price", desc=True)
        else:
            builder = builder.order("created_at", desc=True)

        response = await builder.range(
            query.offset, query.offset + query.limit - 1
        ).execute()
        return [Property.model_validate(row) for row in response.data]

    async def count_active_by_type(self) -> dict[str, int]:
        """Cantidad de propiedades activas por tipo."""
        response = await (
            self.client.table(self.TABLE)
            .select("property_type")
            .eq("status", "active")
            .execute()
        )
        return dict(Counter(row["property_type"] for row in response.data))

    async def list_active_ids(self) -> list[str]:
        """IDs de todas las propiedades activas."""
        response = await (
            self.client.table(self.TABLE)
            .select("id")
            .eq("status", "active")
            .execute()
        )
        return [row["id"] for row in response.data]


class DemandRepository(BaseRepository):
    """Repositorio de demandas (solo lectura)."""

    TABLE = "demand_posts"

    async def get_by_id(self, demand_id: str) -> Optional[DemandPost]:
        """Obtiene una demanda por su ID."""
        response = await (
            self.client.table(self.TABLE)
            .select("*")
            .eq("id", demand_id)
            .limit(1)
            .execute()
        )
        return DemandPost.model_validate(response.data[0]) if response.data else None

    async def list_active_ids(self) -> list[str]:
        """IDs de todas las demandas activas."""
        response = await (
            self.client.table(self.TABLE)
            .select("id")
            .eq("status", "active")
            .execute()
        )
        return [row["id"] for row in response.data]


class EmbeddingRepository(BaseRepository):
    """Repositorio de embeddings de propiedades y demandas."""

    TABLES = {
        EntityKind.PROPERTY: "property_embeddings",
        EntityKind.DEMAND: "demand_embeddings",
    }

    def _table(self, kind: EntityKind):
        return self.client.table(self.TABLES[kind])

    @staticmethod
    def _owner_column(kind: EntityKind) -> str:
        return f"{kind.value}_id"

    async def get(self, kind: EntityKind, owner_id: str) -> Optional[Embedding]:
        """Obtiene el embedding de una entidad, si existe."""
        response = await (
            self._table(kind)
            .select("*")
            .eq(self._owner_column(kind), owner_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return Embedding.from_db_row(kind, response.data[0])

    async def get_many(
        self, kind: EntityKind, owner_ids: Iterable[str]
    ) -> dict[str, Embedding]:
        """Embeddings de varias entidades, indexados por ID del dueño."""
        ids = list(owner_ids)
        if not ids:
            return {}
        response = await (
            self._table(kind)
            .select("*")
            .in_(self._owner_column(kind), ids)
            .execute()
        )
        embeddings = (Embedding.from_db_row(kind, row) for row in response.data)
        return {embedding.owner_id: embedding for embedding in embeddings}

    async def upsert(self, embedding: Embedding) -> dict:
        """
        Inserta o actualiza el embedding de una entidad.

        Returns:
            El registro insertado/actualizado
        """
        kind = embedding.owner_kind
        response = await (
            self._table(kind)
            .upsert(embedding.to_db_dict(), on_conflict=self._owner_column(kind))
            .execute()
        )
        logger.info(
            "Embedding upserted",
            kind=kind.value,
            owner_id=embedding.owner_id,
            model=embedding.model,
        )
        return response.data[0] if response.data else {}

    async def delete(self, kind: EntityKind, owner_id: str) -> None:
        """Borra el embedding de una entidad (no falla si no existe)."""
        await (
            self._table(kind)
            .delete()
            .eq(self._owner_column(kind), owner_id)
            .execute()
        )

    async def list_owner_ids(self, kind: EntityKind) -> set[str]:
        """IDs de las entidades que ya tienen embedding."""
        column = self._owner_column(kind)
        response = await self._table(kind).select(column).execute()
        return {row[column] for row in response.data}


class MatchRepository(BaseRepository):
    """Repositorio de matches persistidos (auditoría / historial)."""

    TABLE = "demand_matches"

    async def upsert_many(self, matches: list[Match]) -> list[dict]:
        """Inserta o actualiza matches por (demand_id, property_id)."""
        if not matches:
            return []
        response = await (
            self.client.table(self.TABLE)
            .upsert(
                [match.to_db_dict() for match in matches],
                on_conflict="demand_id,property_id",
            )
            .execute()
        )
        return response.data

    async def delete_for_demand(self, demand_id: str) -> None:
        """Borra todos los matches de una demanda."""
        await (
            self.client.table(self.TABLE)
            .delete()
            .eq("demand_id", demand_id)
            .execute()
        )

    async def delete_for_property(self, property_id: str) -> None:
        """Borra todos los matches que referencian una propiedad."""
        await (
            self.client.table(self.TABLE)
            .delete()
            .eq("property_id", property_id)
            .execute()
        )

    async def replace_for_demand(
        self, demand_id: str, matches: list[Match]
    ) -> list[dict]:
        """
        Reemplaza el historial de una demanda por un nuevo conjunto.

        Borra los pares que ya no aparecen; los que siguen se actualizan
        por upsert y conservan las acciones del usuario.
        """
        if not matches:
            await self.delete_for_demand(demand_id)
            return []

        keep = sorted({match.property_id for match in matches})
        await (
            self.client.table(self.TABLE)
            .delete()
            .eq("demand_id", demand_id)
            .not_.in_("property_id", keep)
            .execute()
        )
        return await self.upsert_many(matches)

    async def count_for_demand(self, demand_id: str) -> int:
        """Cantidad de matches guardados de una demanda."""
        response = await (
            self.client.table(self.TABLE)
            .select("id", count="exact")
            .eq("demand_id", demand_id)
            .execute()
        )
        return response.count or 0

    async def update_status(
        self, match_id: str, update: MatchStatusUpdate
    ) -> Optional[Match]:
        """
        Actualiza las acciones del usuario sobre un match.

        Returns:
            El match actualizado, o None si no existe
        """
        response = await (
            self.client.table(self.TABLE)
            .update(update.to_db_dict())
            .eq("id", match_id)
            .execute()
        )
        if not response.data:
            return None

        logger.info("Estado de match actualizado", match_id=match_id, **update.to_db_dict())
        return Match.model_validate(response.data[0])

    async def list_for_demand(self, demand_id: str) -> list[Match]:
        """Historial de matches de una demanda, mayor score primero."""
        response = await (
            self.client.table(self.TABLE)
            .select("*")
            .eq("demand_id", demand_id)
            .order("score", desc=True)
            .execute()
        )
        return [Match.model_validate(row) for row in response.data]
