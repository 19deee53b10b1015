"""
Modelo de Property.

Propiedad publicada por el subsistema de listings. Desde este motor es de
solo lectura, salvo por la vinculación con su embedding.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_text_list(value: Any) -> list[str]:
    """
    Normaliza features/amenities a una lista de strings.

    La base guarda estos campos como JSON en texto; puede llegar una lista,
    un objeto (se aplanan sus valores) o un string suelto.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        items: list[str] = []
        for item in value.values():
            items.extend(parse_text_list(item) if isinstance(item, (list, dict)) else [str(item)])
        return [i for i in items if i]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


class Property(BaseModel):
    """Propiedad del catálogo (tabla 'properties')."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    # Identificadores
    id: str = Field(..., description="ID de la propiedad")
    user_id: Optional[str] = Field(None, description="Dueño / agente que publica")

    # Contenido
    title: str = Field("", description="Título del anuncio")
    description: Optional[str] = Field(None, description="Descripción libre")

    # Tipo y estado
    property_type: str = Field(..., description="house, condo, townhouse, land, commercial, apartment")
    listing_type: str = Field(..., description="sale o rent")
    status: str = Field("draft", description="Solo 'active' es matcheable")

    # Precio y superficie
    price: float = Field(..., ge=0, description="Precio en baht")
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    area: Optional[float] = Field(None, ge=0, description="Superficie en m²")

    # Ubicación
    address: Optional[str] = None
    sub_district: Optional[str] = None
    district: Optional[str] = None
    province: Optional[str] = None

    # Características
    features: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)

    # Estadísticas (no forman parte del texto de búsqueda)
    views: int = Field(0, ge=0)
    favorites: int = Field(0, ge=0)

    # Metadatos
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    @field_validator("features", "amenities", mode="before")
    @classmethod
    def _parse_lists(cls, value: Any) -> list[str]:
        return parse_text_list(value)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def recency(self) -> float:
        """Timestamp de publicación para desempatar (más alto = más nuevo)."""
        listed_at = self.published_at or self.created_at
        return listed_at.timestamp() if listed_at else float("-inf")
