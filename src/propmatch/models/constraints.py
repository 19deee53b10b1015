"""
Filtros hard derivados de una DemandPost.

Si una propiedad no los cumple, queda fuera del conjunto de candidatas
antes de cualquier scoring semántico.
"""

from typing import Optional

from pydantic import BaseModel, Field

from propmatch.config import INTENT_TO_LISTING_TYPE
from propmatch.errors import BadRequestError
from propmatch.models.demand import DemandPost


class HardConstraints(BaseModel):
    """Criterios excluyentes para la consulta de candidatas."""

    listing_type: str = Field(..., description="sale o rent")
    property_type: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    province: Optional[str] = None
    district: Optional[str] = None
    bedrooms_min: Optional[int] = None

    @property
    def budget_midpoint(self) -> Optional[float]:
        if self.budget_min is not None and self.budget_max is not None:
            return (self.budget_min + self.budget_max) / 2
        return self.budget_max if self.budget_max is not None else self.budget_min

    @classmethod
    def from_demand(cls, demand: DemandPost) -> "HardConstraints":
        """
        Resuelve los filtros hard de una demanda.

        Raises:
            BadRequestError: intent desconocido, valores negativos o rangos
                invertidos (min > max). No se corrigen en silencio.
        """
        listing_type = INTENT_TO_LISTING_TYPE.get(demand.intent)
        if listing_type is None:
            raise BadRequestError(f"Intent desconocido: {demand.intent!r}")

        for name in (
            "budget_min",
            "budget_max",
            "bedrooms_min",
            "bedrooms_max",
            "bathrooms_min",
            "area_min",
            "area_max",
        ):
            value = getattr(demand, name)
            if value is not None and value < 0:
                raise BadRequestError(f"{name} no puede ser negativo: {value}")

        for low, high in (
            ("budget_min", "budget_max"),
            ("bedrooms_min", "bedrooms_max"),
            ("area_min", "area_max"),
        ):
            low_value = getattr(demand, low)
            high_value = getattr(demand, high)
            if low_value is not None and high_value is not None and low_value > high_value:
                raise BadRequestError(
                    f"{low} ({low_value}) es mayor que {high} ({high_value})"
                )

        return cls(
            listing_type=listing_type,
            property_type=demand.property_type or None,
            budget_min=demand.budget_min,
            budget_max=demand.budget_max,
            province=demand.province or None,
            district=demand.district or None,
            bedrooms_min=demand.bedrooms_min,
        )
