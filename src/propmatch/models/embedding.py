"""
Modelo de Embedding.

Vector semántico 1:1 con una Property o una DemandPost. El content_hash es
el hash del texto canónico que produjo el vector; si no coincide con el
texto reconstruido desde el estado actual, el embedding está vencido.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class EntityKind(str, Enum):
    """Tipo de entidad dueña de un embedding."""

    PROPERTY = "property"
    DEMAND = "demand"


class Embedding(BaseModel):
    """Embedding almacenado (tablas 'property_embeddings' / 'demand_embeddings')."""

    model_config = ConfigDict(from_attributes=True)

    owner_kind: EntityKind
    owner_id: str
    vector: list[float] = Field(..., min_length=1)
    content_hash: str = Field(..., description="md5 del texto de búsqueda")
    model: str = Field(..., description="Modelo que generó el vector")
    dimension: Optional[int] = Field(None, description="Largo del vector")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("vector", mode="before")
    @classmethod
    def _parse_vector(cls, value: Any) -> Any:
        # Supabase devuelve el vector como texto JSON
        if isinstance(value, str):
            return json.loads(value)
        return value

    @model_validator(mode="after")
    def _fill_dimension(self) -> "Embedding":
        if self.dimension is None:
            self.dimension = len(self.vector)
        return self

    def is_current(self, content_hash: str, model: str, dimension: int) -> bool:
        """
        Indica si el embedding puede usarse para matching.

        Hash, modelo y dimensión tienen que coincidir: un cambio de modelo
        fuerza resincronización en vez de comparar vectores incompatibles.
        """
        return (
            self.content_hash == content_hash
            and self.model == model
            and self.dimension == dimension
            and len(self.vector) == dimension
        )

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para upsert en Supabase."""
        owner_column = f"{self.owner_kind.value}_id"
        return {
            owner_column: self.owner_id,
            "embedding": json.dumps(self.vector),
            "content_hash": self.content_hash,
            "model": self.model,
            "dimension": self.dimension,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, kind: EntityKind, row: dict) -> "Embedding":
        """Reconstruye un Embedding desde una fila de Supabase."""
        return cls(
            owner_kind=kind,
            owner_id=row[f"{kind.value}_id"],
            vector=row["embedding"],
            content_hash=row["content_hash"],
            model=row["model"],
            dimension=row.get("dimension"),
            updated_at=row.get("updated_at") or datetime.now(timezone.utc),
        )
