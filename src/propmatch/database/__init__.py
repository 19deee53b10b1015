"""
Módulo de base de datos.

Provee acceso a Supabase y operaciones CRUD.
"""

from propmatch.database.supabase_client import create_supabase_client, SupabaseClient
from propmatch.database.repositories import (
    PropertyRepository,
    DemandRepository,
    EmbeddingRepository,
    MatchRepository,
)

__all__ = [
    "create_supabase_client",
    "SupabaseClient",
    "PropertyRepository",
    "DemandRepository",
    "EmbeddingRepository",
    "MatchRepository",
]
