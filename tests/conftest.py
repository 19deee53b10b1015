"""
Fixtures compartidas.

Repositorios en memoria con la misma interfaz que los de Supabase, un Redis
falso y un proveedor de embeddings controlable (ok / error / timeout).
"""

import asyncio
import fnmatch
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from tenacity import wait_none

from propmatch.cache import CacheStore
from propmatch.config import Settings
from propmatch.embeddings import (
    BaseEmbeddingProvider,
    EmbeddingSynchronizer,
    build_searchable_text,
    content_hash,
)
from propmatch.hooks import MutationHooks
from propmatch.listings import ListingReadService
from propmatch.matching import MatchingEngine
from propmatch.models import (
    DemandPost,
    Embedding,
    EntityKind,
    HardConstraints,
    Match,
    Property,
    PropertySearchQuery,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# FAKES: Repositorios
# =============================================================================


class FakePropertyRepository:
    """PropertyRepository en memoria."""

    def __init__(self):
        self.rows: dict[str, Property] = {}
        self.list_active_calls = 0
        self.get_calls = 0
        self.search_calls = 0
        self.fail_get: set[str] = set()

    def add(self, prop: Property) -> Property:
        self.rows[prop.id] = prop
        return prop

    async def get_by_id(self, property_id: str) -> Optional[Property]:
        self.get_calls += 1
        if property_id in self.fail_get:
            raise ConnectionError("supabase read timeout")
        prop = self.rows.get(property_id)
        return prop.model_copy(deep=True) if prop else None

    async def list_active(
        self, constraints: HardConstraints, limit: int = 200
    ) -> list[Property]:
        self.list_active_calls += 1
        result = []
        for prop in self.rows.values():
            if not prop.is_active or prop.listing_type != constraints.listing_type:
                continue
            if constraints.property_type and prop.property_type != constraints.property_type:
                continue
            if constraints.province and prop.province != constraints.province:
                continue
            if constraints.district and prop.district != constraints.district:
                continue
            if constraints.budget_min is not None and prop.price < constraints.budget_min:
                continue
            if constraints.budget_max is not None and prop.price > constraints.budget_max:
                continue
            if constraints.bedrooms_min is not None and (
                prop.bedrooms is None or prop.bedrooms < constraints.bedrooms_min
            ):
                continue
            result.append(prop.model_copy(deep=True))
        result.sort(key=lambda p: p.recency, reverse=True)
        return result[:limit]

    async def search(self, query: PropertySearchQuery) -> list[Property]:
        self.search_calls += 1
        result = [p for p in self.rows.values() if p.is_active]
        if query.property_type:
            result = [p for p in result if p.property_type == query.property_type]
        if query.min_price is not None:
            result = [p for p in result if p.price >= query.min_price]
        if query.max_price is not None:
            result = [p for p in result if p.price <= query.max_price]
        result.sort(key=lambda p: p.price)
        return result[query.offset : query.offset + query.limit]

    async def count_active_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for prop in self.rows.values():
            if prop.is_active:
                counts[prop.property_type] = counts.get(prop.property_type, 0) + 1
        return counts

    async def list_active_ids(self) -> list[str]:
        return [p.id for p in self.rows.values() if p.is_active]


class FakeDemandRepository:
    """DemandRepository en memoria."""

    def __init__(self):
        self.rows: dict[str, DemandPost] = {}

    def add(self, demand: DemandPost) -> DemandPost:
        self.rows[demand.id] = demand
        return demand

    async def get_by_id(self, demand_id: str) -> Optional[DemandPost]:
        demand = self.rows.get(demand_id)
        return demand.model_copy(deep=True) if demand else None

    async def list_active_ids(self) -> list[str]:
        return [d.id for d in self.rows.values() if d.is_active]


class FakeEmbeddingRepository:
    """EmbeddingRepository en memoria."""

    def __init__(self):
        self.rows: dict[tuple[EntityKind, str], Embedding] = {}
        self.fail_upsert = False
        self.fail_get = False
        self.upserts = 0

    async def get(self, kind: EntityKind, owner_id: str) -> Optional[Embedding]:
        if self.fail_get:
            raise ConnectionError("supabase caído")
        return self.rows.get((kind, owner_id))

    async def get_many(self, kind: EntityKind, owner_ids) -> dict[str, Embedding]:
        return {
            owner_id: self.rows[(kind, owner_id)]
            for owner_id in owner_ids
            if (kind, owner_id) in self.rows
        }

    async def upsert(self, embedding: Embedding) -> dict:
        if self.fail_upsert:
            raise ConnectionError("supabase caído")
        self.upserts += 1
        self.rows[(embedding.owner_kind, embedding.owner_id)] = embedding
        return embedding.to_db_dict()

    async def delete(self, kind: EntityKind, owner_id: str) -> None:
        self.rows.pop((kind, owner_id), None)

    async def list_owner_ids(self, kind: EntityKind) -> set[str]:
        return {owner_id for (k, owner_id) in self.rows if k == kind}


class FakeMatchRepository:
    """MatchRepository en memoria."""

    def __init__(self):
        self.rows: dict[tuple[str, str], Match] = {}
        self.payloads: list[dict] = []
        self.fail_writes = False
        self._next_id = 0

    async def upsert_many(self, matches: list[Match]) -> list[dict]:
        # Como el upsert de PostgREST: en conflicto solo pisa las columnas enviadas
        if self.fail_writes:
            raise ConnectionError("supabase caído")
        for match in matches:
            payload = match.to_db_dict()
            self.payloads.append(payload)
            incoming = Match.model_validate(payload)
            key = (match.demand_id, match.property_id)
            existing = self.rows.get(key)
            if existing is None:
                self._next_id += 1
                self.rows[key] = incoming.model_copy(update={"id": f"m{self._next_id}"})
            else:
                self.rows[key] = existing.model_copy(
                    update={field: getattr(incoming, field) for field in payload}
                )
        return [m.to_db_dict() for m in matches]

    async def delete_for_demand(self, demand_id: str) -> None:
        if self.fail_writes:
            raise ConnectionError("supabase caído")
        for key in [k for k in self.rows if k[0] == demand_id]:
            del self.rows[key]

    async def delete_for_property(self, property_id: str) -> None:
        for key in [k for k in self.rows if k[1] == property_id]:
            del self.rows[key]

    async def replace_for_demand(self, demand_id: str, matches: list[Match]) -> list[dict]:
        if self.fail_writes:
            raise ConnectionError("supabase caído")
        keep = {m.property_id for m in matches}
        for key in [k for k in self.rows if k[0] == demand_id and k[1] not in keep]:
            del self.rows[key]
        return await self.upsert_many(matches)

    async def count_for_demand(self, demand_id: str) -> int:
        return sum(1 for d, _ in self.rows if d == demand_id)

    async def update_status(self, match_id: str, update) -> Optional[Match]:
        for key, match in self.rows.items():
            if match.id == match_id:
                self.rows[key] = match.model_copy(update=update.to_db_dict())
                return self.rows[key]
        return None

    async def list_for_demand(self, demand_id: str) -> list[Match]:
        records = [m for (d, _), m in self.rows.items() if d == demand_id]
        return sorted(records, key=lambda m: m.score, reverse=True)


# =============================================================================
# FAKES: Redis
# =============================================================================


class FakeLock:
    def __init__(self, redis: "FakeRedis", name: str):
        self.redis = redis
        self.name = name

    async def acquire(self, blocking: bool = False) -> bool:
        if self.redis.down:
            raise self.redis.error()
        if self.name in self.redis.locks:
            return False
        self.redis.locks.add(self.name)
        return True

    async def release(self) -> None:
        self.redis.locks.discard(self.name)


class FakeRedis:
    """Subconjunto de redis.asyncio.Redis usado por el cache y el backfill."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.locks: set[str] = set()
        self.down = False
        self.hang = False
        self.closed = False

    @staticmethod
    def error():
        from redis.exceptions import ConnectionError as RedisConnectionError

        return RedisConnectionError("redis caído")

    async def _check(self) -> None:
        if self.down:
            raise self.error()
        if self.hang:
            await asyncio.sleep(10)

    async def get(self, key: str) -> Optional[str]:
        await self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        await self._check()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        await self._check()
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    async def scan_iter(self, match: str = "*", count: int = 10):
        await self._check()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        await self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True

    def lock(self, name: str, timeout: Optional[float] = None, blocking: bool = True):
        return FakeLock(self, name)


# =============================================================================
# FAKES: Proveedor de embeddings
# =============================================================================


class FakeEmbeddingProvider(BaseEmbeddingProvider):
    """
    Proveedor controlable.

    mode: 'ok' devuelve `vectors[texto]` o `default_vector`; 'error' lanza
    ConnectionError; 'hang' duerme más que el timeout.
    """

    provider_name = "fake"

    def __init__(self, dimension: int = 2, **kwargs):
        kwargs.setdefault("timeout", 0.05)
        kwargs.setdefault("retry_wait", wait_none())
        super().__init__(model="fake-embedding", dimension=dimension, **kwargs)
        self.mode = "ok"
        self.vectors: dict[str, list[float]] = {}
        self.default_vector = [1.0] + [0.0] * (dimension - 1)
        self.calls: list[str] = []

    async def _embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.mode == "error":
            raise ConnectionError("proveedor caído")
        if self.mode == "hang":
            await asyncio.sleep(1)
        return self.vectors.get(text, self.default_vector)

    async def _probe(self) -> None:
        if self.mode != "ok":
            raise ConnectionError("proveedor caído")


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Configuración de test (sin leer .env)."""
    return Settings(
        _env_file=None,
        supabase_url="http://localhost:54321",
        supabase_key="test-key",
        gemini_api_key="test-gemini",
        embedding_model="fake-embedding",
        embedding_dimension=2,
        embedding_timeout_seconds=0.05,
        cache_timeout_seconds=0.05,
        backfill_delay_seconds=0,
    )


@pytest.fixture
def property_repo() -> FakePropertyRepository:
    return FakePropertyRepository()


@pytest.fixture
def demand_repo() -> FakeDemandRepository:
    return FakeDemandRepository()


@pytest.fixture
def embedding_repo() -> FakeEmbeddingRepository:
    return FakeEmbeddingRepository()


@pytest.fixture
def match_repo() -> FakeMatchRepository:
    return FakeMatchRepository()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis, settings) -> CacheStore:
    return CacheStore(fake_redis, settings)


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(dimension=2)


@pytest.fixture
def synchronizer(provider, embedding_repo, property_repo, demand_repo) -> EmbeddingSynchronizer:
    return EmbeddingSynchronizer(provider, embedding_repo, property_repo, demand_repo)


@pytest.fixture
def engine(
    settings, demand_repo, property_repo, embedding_repo, match_repo, synchronizer, cache
) -> MatchingEngine:
    return MatchingEngine(
        settings,
        demand_repo=demand_repo,
        property_repo=property_repo,
        embedding_repo=embedding_repo,
        match_repo=match_repo,
        synchronizer=synchronizer,
        cache=cache,
    )


@pytest.fixture
def hooks(synchronizer, match_repo, cache) -> MutationHooks:
    return MutationHooks(synchronizer, match_repo, cache)


@pytest.fixture
def listings(property_repo, cache) -> ListingReadService:
    return ListingReadService(property_repo, cache)


@pytest.fixture
def make_property():
    """Factory de Property con valores por defecto razonables."""

    def _make(property_id: str = "p1", days_old: int = 0, **overrides) -> Property:
        data = {
            "id": property_id,
            "user_id": "agent-1",
            "title": f"Condo {property_id}",
            "description": "Modern condo near BTS",
            "property_type": "condo",
            "listing_type": "sale",
            "status": "active",
            "price": 3_000_000,
            "bedrooms": 2,
            "bathrooms": 1,
            "area": 45,
            "province": "Bangkok",
            "district": "Watthana",
            "features": ["balcony"],
            "amenities": ["pool", "gym"],
            "created_at": BASE_TIME - timedelta(days=days_old),
        }
        data.update(overrides)
        return Property(**data)

    return _make


@pytest.fixture
def make_demand():
    """Factory de DemandPost: condo en venta, 2-4M, Watthana."""

    def _make(demand_id: str = "d1", **overrides) -> DemandPost:
        data = {
            "id": demand_id,
            "user_id": "buyer-1",
            "intent": "buy",
            "property_type": "condo",
            "budget_min": 2_000_000,
            "budget_max": 4_000_000,
            "province": "Bangkok",
            "district": "Watthana",
            "description": "Looking for a condo close to BTS",
        }
        data.update(overrides)
        return DemandPost(**data)

    return _make


@pytest.fixture
def store_embedding(embedding_repo, provider):
    """Guarda un embedding vigente para una entidad con el vector dado."""

    def _store(entity, vector: list[float]) -> Embedding:
        kind = EntityKind.PROPERTY if isinstance(entity, Property) else EntityKind.DEMAND
        embedding = Embedding(
            owner_kind=kind,
            owner_id=entity.id,
            vector=vector,
            content_hash=content_hash(build_searchable_text(entity)),
            model=provider.model,
            dimension=provider.dimension,
        )
        embedding_repo.rows[(kind, entity.id)] = embedding
        return embedding

    return _store


def unit_vector_with_cosine(cosine: float) -> list[float]:
    """Vector 2D cuyo coseno contra [1, 0] es `cosine`."""
    return [cosine, math.sqrt(max(0.0, 1 - cosine * cosine))]


@pytest.fixture
def vector_with_cosine():
    return unit_vector_with_cosine
