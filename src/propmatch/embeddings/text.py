"""
Texto de búsqueda canónico para embeddings.

El texto se arma solo con campos semánticamente relevantes: nada de
timestamps, contadores ni orden aleatorio. Así el hash del texto cambia
únicamente cuando cambia el contenido.
"""

import hashlib
from typing import Optional, Union

from propmatch.config import (
    DEMAND_INTENT_LABELS,
    LISTING_TYPE_LABELS,
    PROPERTY_TYPE_LABELS,
)
from propmatch.embeddings.provider import normalize_text
from propmatch.models import DemandPost, EntityKind, Property

# La descripción va al final y acotada para que el truncado del proveedor
# no se lleve precio, ubicación ni specs
DESCRIPTION_MAX_CHARS = 500


def format_number(value: float) -> str:
    """2.0 -> '2', 2.5 -> '2.5'."""
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def format_price(price: float) -> str:
    """Precio en palabras (baht): 2500000 -> '2.5 ล้านบาท'."""
    if price >= 1_000_000:
        return f"{price / 1_000_000:.1f} ล้านบาท"
    if price >= 1_000:
        return f"{price / 1_000:.0f} พันบาท"
    return f"{format_number(price)} บาท"


def _format_range(
    low: Optional[float], high: Optional[float], unit: str, fmt=format_number
) -> Optional[str]:
    if low is not None and high is not None:
        return f"{fmt(low)} - {fmt(high)} {unit}".strip()
    if low is not None:
        return f"ขั้นต่ำ min {fmt(low)} {unit}".strip()
    if high is not None:
        return f"ไม่เกิน max {fmt(high)} {unit}".strip()
    return None


def _property_type_text(property_type: Optional[str]) -> Optional[str]:
    if not property_type:
        return None
    label = PROPERTY_TYPE_LABELS.get(property_type)
    return f"{property_type} {label}" if label else property_type


def _description(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    return normalize_text(description, max_chars=DESCRIPTION_MAX_CHARS)


def build_property_text(prop: Property, max_chars: int = 800) -> str:
    """
    Construye el texto de búsqueda de una propiedad.

    Combina tipo de operación y de propiedad (tailandés + inglés), título,
    ubicación, precio en palabras, dormitorios/baños/superficie,
    features/amenities ordenados y por último la descripción.

    `max_chars` debe ser el límite del proveedor: el hash se calcula sobre
    exactamente el texto que se embebe.
    """
    parts = [
        LISTING_TYPE_LABELS.get(prop.listing_type, prop.listing_type),
        _property_type_text(prop.property_type),
        prop.title,
        prop.province,
        prop.district,
        prop.sub_district,
        prop.address,
        f"ราคา {format_price(prop.price)}",
        f"{prop.bedrooms} ห้องนอน bedroom" if prop.bedrooms else None,
        f"{prop.bathrooms} ห้องน้ำ bathroom" if prop.bathrooms else None,
        f"{format_number(prop.area)} ตารางเมตร sqm" if prop.area else None,
        " ".join(sorted(set(prop.features))) if prop.features else None,
        " ".join(sorted(set(prop.amenities))) if prop.amenities else None,
        _description(prop.description),
    ]
    return normalize_text(" ".join(p for p in parts if p), max_chars=max_chars)


def build_demand_text(demand: DemandPost, max_chars: int = 800) -> str:
    """
    Construye el texto de búsqueda de una demanda.

    Estado y urgencia no forman parte del texto: cerrar una demanda no
    invalida su embedding.
    """
    budget = _format_range(demand.budget_min, demand.budget_max, "", fmt=format_price)
    bedrooms = _format_range(demand.bedrooms_min, demand.bedrooms_max, "ห้องนอน bedroom")
    area = _format_range(demand.area_min, demand.area_max, "ตารางเมตร sqm")

    parts = [
        DEMAND_INTENT_LABELS.get(demand.intent, demand.intent),
        _property_type_text(demand.property_type),
        f"งบประมาณ budget {budget}" if budget else None,
        demand.province,
        demand.district,
        demand.sub_district,
        f"ใกล้ BTS {demand.near_bts}" if demand.near_bts else None,
        f"ใกล้ MRT {demand.near_mrt}" if demand.near_mrt else None,
        bedrooms,
        f"ขั้นต่ำ min {demand.bathrooms_min} ห้องน้ำ bathroom" if demand.bathrooms_min else None,
        area,
        " ".join(sorted(set(demand.tags))) if demand.tags else None,
        _description(demand.description),
    ]
    return normalize_text(" ".join(p for p in parts if p), max_chars=max_chars)


def build_searchable_text(
    entity: Union[Property, DemandPost], max_chars: int = 800
) -> str:
    """Texto de búsqueda de una Property o DemandPost."""
    if isinstance(entity, Property):
        return build_property_text(entity, max_chars=max_chars)
    if isinstance(entity, DemandPost):
        return build_demand_text(entity, max_chars=max_chars)
    raise TypeError(f"Entidad no soportada: {type(entity).__name__}")


def entity_kind(entity: Union[Property, DemandPost]) -> EntityKind:
    if isinstance(entity, Property):
        return EntityKind.PROPERTY
    if isinstance(entity, DemandPost):
        return EntityKind.DEMAND
    raise TypeError(f"Entidad no soportada: {type(entity).__name__}")


def content_hash(text: str) -> str:
    """Hash md5 del texto canónico."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()
