"""
Modelos de datos del sistema.

- Entidades de origen: Property, DemandPost (de solo lectura para el motor)
- Capa derivada: Embedding, Match
- Resultados: RankedProperty, MatchSet
"""

from propmatch.models.property import Property, parse_text_list
from propmatch.models.demand import DemandPost
from propmatch.models.embedding import Embedding, EntityKind
from propmatch.models.constraints import HardConstraints
from propmatch.models.search import PropertySearchQuery
from propmatch.models.match import (
    Match,
    MatchClassification,
    MatchSet,
    MatchStatusUpdate,
    RankedProperty,
)

__all__ = [
    # Origen
    "Property",
    "DemandPost",
    "parse_text_list",
    # Derivados
    "Embedding",
    "EntityKind",
    "Match",
    "MatchClassification",
    "MatchStatusUpdate",
    # Matching
    "HardConstraints",
    "PropertySearchQuery",
    "RankedProperty",
    "MatchSet",
]
