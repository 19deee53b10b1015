"""
Derivación de keys de cache estables.

Dos queries lógicamente iguales generan la misma key sin importar el orden
de inserción de los campos ni la presencia de campos en None.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


def canonicalize(value: Any) -> Any:
    """
    Convierte una estructura arbitraria en su forma canónica JSON-compatible.

    - dicts: keys como string, ordenadas, sin valores None
    - modelos pydantic: se vuelcan sin campos None
    - sets: ordenados; tuplas: como listas
    - floats enteros: como int (2.0 == 2)
    """
    if isinstance(value, BaseModel):
        return canonicalize(value.model_dump(mode="json", exclude_none=True))
    if isinstance(value, dict):
        return {
            str(k): canonicalize(v)
            for k, v in sorted(value.items(), key=lambda item: str(item[0]))
            if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def canonical_json(value: Any) -> str:
    """Serialización canónica (determinística) de una estructura."""
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def stable_key(namespace: str, query: Any) -> str:
    """
    Key de cache estable para una query.

    Args:
        namespace: Prefijo lógico (ej: 'search')
        query: dict o modelo con filtros / orden / paginación

    Returns:
        '{namespace}:{sha1 de la forma canónica}'
    """
    digest = hashlib.sha1(canonical_json(query).encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


class CacheKeys:
    """Builders de keys usadas por las lecturas cacheadas."""

    PROPERTY = "property"
    SEARCH = "search"
    STATS = "stats"
    CANDIDATES = "candidates"

    @classmethod
    def property(cls, property_id: str) -> str:
        return f"{cls.PROPERTY}:{property_id}"

    @classmethod
    def property_search(cls, query: Any) -> str:
        return stable_key(cls.SEARCH, query)

    @classmethod
    def search_pattern(cls) -> str:
        return f"{cls.SEARCH}:*"

    @classmethod
    def property_stats(cls) -> str:
        return f"{cls.STATS}:property_types"

    @classmethod
    def candidates(cls, constraints: Any, limit: int) -> str:
        return stable_key(cls.CANDIDATES, {"constraints": constraints, "limit": limit})

    @classmethod
    def candidates_pattern(cls) -> str:
        return f"{cls.CANDIDATES}:*"
