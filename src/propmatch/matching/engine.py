"""
Motor de matching entre demandas y propiedades.

Implementa:
- Filtro Hard: candidatas activas que cumplen tipo, intent, presupuesto y ubicación
- Filtro Vectorial: similitud semántica demanda-propiedad
- Degradación: si el proveedor de embeddings no responde, ranking solo por
  restricciones (nunca un error para el caller)
"""

from typing import Optional

import structlog

from propmatch.cache import CacheKeys, CacheStore, TTLClass
from propmatch.config import Settings
from propmatch.database import (
    DemandRepository,
    EmbeddingRepository,
    MatchRepository,
    PropertyRepository,
)
from propmatch.embeddings import EmbeddingSynchronizer
from propmatch.errors import NotFoundError, PersistenceWarning
from propmatch.matching.scoring import (
    DEGRADED_EXPLANATION,
    DEGRADED_NOTICE,
    NEUTRAL_SCORE,
    constraint_score,
    explain,
    scale_below_threshold,
    semantic_score,
)
from propmatch.models import (
    DemandPost,
    Embedding,
    EntityKind,
    HardConstraints,
    Match,
    MatchClassification,
    MatchSet,
    MatchStatusUpdate,
    Property,
    RankedProperty,
)

logger = structlog.get_logger()


def _rank_key(item: RankedProperty) -> tuple[int, float]:
    # Score descendente; empate -> publicación más reciente primero
    return (item.score, item.property.recency)


class MatchingEngine:
    """
    Motor de matching con filtros hard + similitud vectorial.

    Flujo de compute_matches:
    1. Cargar la demanda (NotFoundError si no existe)
    2. Resolver filtros hard (BadRequestError si son inválidos)
    3. Consultar candidatas activas (cacheadas por filtros)
    4. Obtener o generar el embedding de la demanda; si falla, degradar
    5. Puntuar: coseno si la propiedad tiene embedding vigente, si no
       cercanía a las restricciones
    6. Particionar por umbral, ordenar, limitar recomendaciones
    7. Persistir el historial (errores solo se loguean)
    """

    def __init__(
        self,
        settings: Settings,
        demand_repo: DemandRepository,
        property_repo: PropertyRepository,
        embedding_repo: EmbeddingRepository,
        match_repo: MatchRepository,
        synchronizer: EmbeddingSynchronizer,
        cache: Optional[CacheStore] = None,
    ):
        self.settings = settings
        self.demand_repo = demand_repo
        self.property_repo = property_repo
        self.embedding_repo = embedding_repo
        self.match_repo = match_repo
        self.synchronizer = synchronizer
        self.cache = cache

    @property
    def threshold(self) -> int:
        return self.settings.match_threshold

    async def compute_matches(self, demand_id: str) -> MatchSet:
        """
        Calcula matches y recomendaciones para una demanda.

        Raises:
            NotFoundError: la demanda no existe
            BadRequestError: restricciones inválidas (ej: budget_min > budget_max)
        """
        return await self._run(demand_id, refresh=False)

    async def refresh_matches(self, demand_id: str) -> MatchSet:
        """
        Fuerza la regeneración del embedding de la demanda y recalcula.

        Reemplaza el historial previo de matches de la demanda; los pares que
        siguen apareciendo conservan las acciones del usuario.
        """
        return await self._run(demand_id, refresh=True)

    async def get_match_history(self, demand_id: str) -> list[Match]:
        """Historial de matches persistidos de una demanda."""
        return await self.match_repo.list_for_demand(demand_id)

    async def count_matches(self, demand_id: str) -> int:
        return await self.match_repo.count_for_demand(demand_id)

    async def update_match_status(
        self, match_id: str, update: MatchStatusUpdate
    ) -> Match:
        """
        Marca un match como visto, guardado o contactado.

        El chequeo de ownership es del caller. Los recálculos posteriores
        no pisan estos campos.

        Raises:
            NotFoundError: el match no existe
        """
        updated = await self.match_repo.update_status(match_id, update)
        if updated is None:
            raise NotFoundError("Match", match_id)
        return updated

    async def _run(self, demand_id: str, refresh: bool) -> MatchSet:
        demand = await self.demand_repo.get_by_id(demand_id)
        if demand is None:
            raise NotFoundError("DemandPost", demand_id)

        constraints = HardConstraints.from_demand(demand)
        candidates = await self._load_candidates(constraints, refresh=refresh)

        demand_embedding = await self._demand_embedding(demand, force=refresh)

        if demand_embedding is None:
            result = self._degraded(demand, candidates)
        else:
            result = await self._rank(demand, constraints, candidates, demand_embedding)

        result.persisted = await self._persist(result, supersede=refresh)

        logger.info(
            "Matches calculados",
            demand_id=demand_id,
            candidates=len(candidates),
            matches=len(result.matches),
            recommendations=len(result.recommendations),
            degraded=result.degraded,
            refresh=refresh,
        )
        return result

    async def _load_candidates(
        self, constraints: HardConstraints, refresh: bool = False
    ) -> list[Property]:
        limit = self.settings.candidate_limit

        async def loader() -> list[Property]:
            return await self.property_repo.list_active(constraints, limit=limit)

        if self.cache is None:
            return await loader()

        key = CacheKeys.candidates(constraints, limit)
        if refresh:
            await self.cache.invalidate(key)
        return await self.cache.get_or_set(key, TTLClass.SHORT, loader, model=list[Property])

    async def _demand_embedding(
        self, demand: DemandPost, force: bool
    ) -> Optional[Embedding]:
        if not force:
            current = await self.synchronizer.current_embedding(demand)
            if current is not None:
                return current

        # Un solo intento sincrónico; si falla, el caller degrada
        result = await self.synchronizer.sync_entity(demand, force=force)
        return result.embedding

    def _degraded(self, demand: DemandPost, candidates: list[Property]) -> MatchSet:
        score = min(NEUTRAL_SCORE, max(0, self.threshold - 1))
        recommendations = [
            RankedProperty(
                property=prop,
                score=score,
                classification=MatchClassification.RECOMMENDATION,
                explanation=DEGRADED_EXPLANATION,
                semantic=False,
            )
            for prop in candidates
        ]
        recommendations.sort(key=_rank_key, reverse=True)

        logger.warning(
            "Ranking semántico no disponible, resultado degradado",
            demand_id=demand.id,
            candidates=len(candidates),
        )
        return MatchSet(
            demand_id=demand.id,
            recommendations=recommendations[: self.settings.max_recommendations],
            degraded=True,
            notice=DEGRADED_NOTICE,
        )

    async def _rank(
        self,
        demand: DemandPost,
        constraints: HardConstraints,
        candidates: list[Property],
        demand_embedding: Embedding,
    ) -> MatchSet:
        property_embeddings = await self.embedding_repo.get_many(
            EntityKind.PROPERTY, [p.id for p in candidates]
        )

        ranked: list[RankedProperty] = []
        for prop in candidates:
            factors = constraint_score(demand, constraints, prop)
            embedding = property_embeddings.get(prop.id)

            if self.synchronizer.is_current(embedding, prop):
                score = semantic_score(demand_embedding.vector, embedding.vector)
                explanation = explain(factors.factors, semantic=score)
                semantic = True
            else:
                score = scale_below_threshold(factors.raw, self.threshold)
                explanation = explain(factors.factors)
                semantic = False

            classification = (
                MatchClassification.MATCH
                if score >= self.threshold
                else MatchClassification.RECOMMENDATION
            )
            ranked.append(
                RankedProperty(
                    property=prop,
                    score=score,
                    classification=classification,
                    explanation=explanation,
                    semantic=semantic,
                )
            )

        ranked.sort(key=_rank_key, reverse=True)
        matches = [r for r in ranked if r.classification == MatchClassification.MATCH]
        recommendations = [
            r for r in ranked if r.classification == MatchClassification.RECOMMENDATION
        ]

        return MatchSet(
            demand_id=demand.id,
            matches=matches,
            recommendations=recommendations[: self.settings.max_recommendations],
        )

    async def _persist(self, result: MatchSet, supersede: bool) -> bool:
        records = [item.to_match(result.demand_id) for item in result.all]
        try:
            if supersede:
                await self.match_repo.replace_for_demand(result.demand_id, records)
            else:
                await self.match_repo.upsert_many(records)
            return True
        except Exception as e:
            logger.warning(
                "No se pudo guardar el historial de matches",
                demand_id=result.demand_id,
                category=PersistenceWarning.__name__,
                error=str(e),
            )
            return False
