"""
Modelos de resultado de matching.

- Match: registro histórico persistido (tabla 'demand_matches').
- RankedProperty: entrada de un resultado en memoria.
- MatchSet: las dos listas (matches / recommendations) devueltas al caller.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from propmatch.errors import BadRequestError
from propmatch.models.property import Property

# Columnas que solo cambia el usuario; el motor nunca las escribe
USER_ACTION_FIELDS = frozenset({"is_viewed", "is_saved", "is_contacted"})


class MatchClassification(str, Enum):
    """Clasificación de una propiedad puntuada contra una demanda."""

    MATCH = "match"
    RECOMMENDATION = "recommendation"


class Match(BaseModel):
    """Registro de auditoría de un par demanda-propiedad."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: Optional[str] = Field(None, description="ID generado por la base")
    demand_id: str
    property_id: str
    score: int = Field(..., ge=0, le=100)
    classification: MatchClassification
    explanation: str = ""
    matched_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    # Acciones del usuario
    is_viewed: bool = False
    is_saved: bool = False
    is_contacted: bool = False

    def to_db_dict(self) -> dict:
        """
        Convierte a diccionario para upsert en Supabase.

        Sin las acciones del usuario: un recálculo actualiza score,
        clasificación y explicación pero conserva viewed/saved/contacted
        (en un insert nuevo toman el default de la tabla).
        """
        return self.model_dump(exclude={"id", *USER_ACTION_FIELDS}, mode="json")


class MatchStatusUpdate(BaseModel):
    """Cambio de acciones del usuario sobre un match (solo los campos enviados)."""

    is_viewed: Optional[bool] = None
    is_saved: Optional[bool] = None
    is_contacted: Optional[bool] = None

    @model_validator(mode="after")
    def _check_not_empty(self) -> "MatchStatusUpdate":
        if not self.to_db_dict():
            raise BadRequestError("La actualización de estado no tiene campos")
        return self

    def to_db_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class RankedProperty(BaseModel):
    """Propiedad puntuada y explicada para una demanda."""

    property: Property
    score: int = Field(..., ge=0, le=100)
    classification: MatchClassification
    explanation: str
    semantic: bool = Field(
        False, description="True si el score viene de similitud vectorial"
    )

    @property
    def property_id(self) -> str:
        return self.property.id

    def to_match(self, demand_id: str) -> Match:
        return Match(
            demand_id=demand_id,
            property_id=self.property.id,
            score=self.score,
            classification=self.classification,
            explanation=self.explanation,
        )


class MatchSet(BaseModel):
    """Resultado de compute_matches / refresh_matches."""

    demand_id: str
    matches: list[RankedProperty] = Field(default_factory=list)
    recommendations: list[RankedProperty] = Field(default_factory=list)
    degraded: bool = Field(
        False, description="True si el ranking semántico no estuvo disponible"
    )
    notice: Optional[str] = None
    persisted: bool = Field(
        True, description="False si no se pudo escribir el historial de matches"
    )

    @property
    def all(self) -> list[RankedProperty]:
        return [*self.matches, *self.recommendations]

    @property
    def is_empty(self) -> bool:
        return not self.matches and not self.recommendations
