"""
Motor de matching.

Combina filtros hard y similitud semántica para rankear las propiedades
más relevantes para cada demanda.
"""

from propmatch.matching.engine import MatchingEngine
from propmatch.matching.scoring import (
    DEGRADED_EXPLANATION,
    constraint_score,
    explain,
    semantic_score,
)

__all__ = [
    "MatchingEngine",
    "DEGRADED_EXPLANATION",
    "constraint_score",
    "explain",
    "semantic_score",
]
