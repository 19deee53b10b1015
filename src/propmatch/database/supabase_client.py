"""
Cliente async de Supabase.

Lo crea el container y se inyecta en los repositorios; no hay instancia
global.
"""

import structlog
from supabase import AsyncClient, acreate_client

from propmatch.config import Settings

logger = structlog.get_logger()


class SupabaseClient:
    """Envoltorio fino sobre AsyncClient: los repositorios solo ven `table()`."""

    def __init__(self, client: AsyncClient):
        self._client = client

    @property
    def client(self) -> AsyncClient:
        return self._client

    def table(self, name: str):
        """Query builder de postgrest para una tabla."""
        return self._client.table(name)


async def create_supabase_client(settings: Settings) -> SupabaseClient:
    """
    Crea el cliente async de Supabase.

    Usa la service key si está configurada: el motor escribe embeddings y
    matches, que con la anon key quedarían bloqueados por RLS.

    Raises:
        ValueError: faltan SUPABASE_URL o SUPABASE_KEY
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("Faltan SUPABASE_URL / SUPABASE_KEY en el entorno")

    key = settings.supabase_service_key or settings.supabase_key
    client = await acreate_client(settings.supabase_url, key)
    logger.info(
        "Supabase conectado",
        url=settings.supabase_url,
        service_role=settings.supabase_service_key is not None,
    )
    return SupabaseClient(client)
