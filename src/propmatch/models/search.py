"""Query de búsqueda de propiedades (lecturas cacheadas)."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from propmatch.errors import BadRequestError


class PropertySearchQuery(BaseModel):
    """Filtros y paginación de una búsqueda del catálogo."""

    q: Optional[str] = Field(None, description="Texto libre")
    property_type: Optional[str] = None
    listing_type: Optional[str] = None
    province: Optional[str] = None
    district: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    bedrooms_min: Optional[int] = Field(None, ge=0)
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort: Literal["newest", "price_asc", "price_desc"] = "newest"

    @model_validator(mode="after")
    def _check_price_range(self) -> "PropertySearchQuery":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise BadRequestError(
                f"min_price ({self.min_price}) es mayor que max_price ({self.max_price})"
            )
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
