"""
Scoring y explicaciones de matching.

- Score semántico: similitud de coseno normalizada a 0-100.
- Score por restricciones: cercanía de precio al centro del presupuesto,
  ubicación, dormitorios y superficie. Se escala por debajo del umbral de
  match, así una propiedad sin embedding nunca se clasifica como match.
"""

from dataclasses import dataclass, field
from typing import Optional

from propmatch.embeddings import BaseEmbeddingProvider
from propmatch.models import DemandPost, HardConstraints, Property

NEUTRAL_SCORE = 50

DEGRADED_EXPLANATION = (
    "This demand does not yet have AI ranking available; "
    "showing listings that meet your requirements."
)

DEGRADED_NOTICE = "AI ranking is temporarily unavailable. Results are based on your requirements only."

# Bandas de similitud semántica (score mínimo, texto)
SEMANTIC_BANDS = [
    (85, "Very close to what you described"),
    (70, "Closely matches your description"),
    (50, "Partially matches your description"),
    (0, "Loosely related to your description"),
]


@dataclass
class Factor:
    """Factor que contribuye al score de una propiedad."""

    weight: float
    text: str


@dataclass
class ConstraintScore:
    """Score 0-100 por restricciones más los factores que lo explican."""

    raw: float
    factors: list[Factor] = field(default_factory=list)


def semantic_score(demand_vector: list[float], property_vector: list[float]) -> int:
    """
    Similitud de coseno llevada a 0-100.

    Similitudes negativas cuentan como 0; un vector contra sí mismo da 100.
    """
    similarity = BaseEmbeddingProvider.cosine_similarity(demand_vector, property_vector)
    return max(0, min(100, round(max(0.0, similarity) * 100)))


def semantic_band(score: int) -> str:
    for minimum, text in SEMANTIC_BANDS:
        if score >= minimum:
            return text
    return SEMANTIC_BANDS[-1][1]


def _price_factor(constraints: HardConstraints, price: float) -> Factor:
    low, high = constraints.budget_min, constraints.budget_max
    midpoint = constraints.budget_midpoint

    if midpoint is None:
        return Factor(15, "No budget limit set")

    if low is not None and high is not None and high > low:
        half_range = (high - low) / 2
    else:
        half_range = midpoint or 1.0

    proximity = max(0.0, 1.0 - abs(price - midpoint) / half_range)
    if proximity >= 0.8:
        text = "Priced near the middle of your budget"
    elif low is not None and high is not None and low <= price <= high:
        text = "Priced within your budget"
    else:
        text = "Priced close to your budget"
    return Factor(30 * proximity, text)


def constraint_score(
    demand: DemandPost, constraints: HardConstraints, prop: Property
) -> ConstraintScore:
    """
    Score 0-100 de una propiedad usando solo datos estructurados.

    Tipo e intent ya vienen filtrados por la consulta de candidatas, por eso
    suman una base fija.
    """
    factors = [
        Factor(
            40,
            f"{prop.property_type.capitalize()} for {prop.listing_type} as requested",
        ),
        _price_factor(constraints, prop.price),
    ]

    if demand.district and prop.district == demand.district:
        factors.append(Factor(10, f"Located in {prop.district}"))
    if demand.province and prop.province == demand.province:
        factors.append(Factor(5, f"In {prop.province}"))

    if prop.bedrooms is not None and (demand.bedrooms_min or demand.bedrooms_max):
        low = demand.bedrooms_min or 0
        high = demand.bedrooms_max if demand.bedrooms_max is not None else prop.bedrooms
        if low <= prop.bedrooms <= high:
            factors.append(Factor(10, f"{prop.bedrooms} bedrooms as requested"))

    if prop.area is not None and (demand.area_min or demand.area_max):
        low = demand.area_min or 0
        high = demand.area_max if demand.area_max is not None else prop.area
        if low <= prop.area <= high:
            factors.append(Factor(5, f"{prop.area:g} sqm within your range"))

    raw = min(100.0, sum(f.weight for f in factors))
    return ConstraintScore(raw=raw, factors=factors)


def scale_below_threshold(raw: float, threshold: int) -> int:
    """Lleva un score 0-100 al rango [0, threshold - 1]."""
    ceiling = max(0, threshold - 1)
    return max(0, min(ceiling, round(raw * ceiling / 100)))


def explain(factors: list[Factor], semantic: Optional[int] = None, top: int = 2) -> str:
    """
    Explicación en lenguaje natural a partir de los factores dominantes.

    Args:
        factors: Factores de restricciones
        semantic: Score semántico (None si no hubo ranking por IA)
        top: Cantidad de factores de restricciones a mencionar
    """
    dominant = sorted(factors, key=lambda f: f.weight, reverse=True)[:top]
    details = "; ".join(f.text for f in dominant if f.weight > 0)

    if semantic is not None:
        head = f"{semantic_band(semantic)} ({semantic}% similarity)"
        return f"{head}. {details}." if details else f"{head}."

    head = "Ranked by listing details only"
    return f"{head}: {details}." if details else f"{head}."
