"""
Módulo de embeddings.

Cliente del proveedor, rate limiting compartido, texto de búsqueda
canónico y sincronización de embeddings con su entidad de origen.
"""

from propmatch.embeddings.rate_limiter import TokenBucketRateLimiter
from propmatch.embeddings.provider import (
    BaseEmbeddingProvider,
    GeminiEmbeddingProvider,
    get_embedding_provider,
    normalize_text,
)
from propmatch.embeddings.text import (
    DESCRIPTION_MAX_CHARS,
    build_demand_text,
    build_property_text,
    build_searchable_text,
    content_hash,
    format_price,
)
from propmatch.embeddings.synchronizer import (
    EmbeddingSynchronizer,
    SyncOutcome,
    SyncResult,
)

__all__ = [
    # Proveedor
    "BaseEmbeddingProvider",
    "GeminiEmbeddingProvider",
    "get_embedding_provider",
    "normalize_text",
    "TokenBucketRateLimiter",
    # Texto
    "DESCRIPTION_MAX_CHARS",
    "build_demand_text",
    "build_property_text",
    "build_searchable_text",
    "content_hash",
    "format_price",
    # Sync
    "EmbeddingSynchronizer",
    "SyncOutcome",
    "SyncResult",
]
