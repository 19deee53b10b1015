"""
Modelo de DemandPost.

Publicación de un comprador/inquilino describiendo lo que busca.
Los cambios de estado no invalidan el embedding; el contenido sí.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from propmatch.models.property import parse_text_list


class DemandPost(BaseModel):
    """Demanda publicada por un usuario (tabla 'demand_posts')."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    # Identificadores
    id: str = Field(..., description="ID de la demanda")
    user_id: str = Field(..., description="Usuario dueño de la demanda")

    # Intención y tipo
    intent: str = Field(..., description="buy o rent")
    property_type: Optional[str] = Field(None, description="Tipo buscado (opcional)")

    # Presupuesto
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None

    # Ubicación
    province: Optional[str] = None
    district: Optional[str] = None
    sub_district: Optional[str] = None
    near_bts: Optional[str] = Field(None, description="Estación BTS cercana")
    near_mrt: Optional[str] = Field(None, description="Estación MRT cercana")

    # Requisitos
    bedrooms_min: Optional[int] = None
    bedrooms_max: Optional[int] = None
    bathrooms_min: Optional[int] = None
    area_min: Optional[float] = None
    area_max: Optional[float] = None

    # Texto libre
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    # Configuración y estado
    urgency: str = Field("normal", description="urgent, normal, not_rush")
    status: str = Field("active", description="active, matched, closed, expired")

    # Metadatos
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, value: Any) -> list[str]:
        return parse_text_list(value)

    @property
    def is_active(self) -> bool:
        return self.status == "active"
