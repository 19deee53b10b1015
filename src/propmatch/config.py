"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Encontrar la raíz del proyecto (donde está el .env)
# config.py -> propmatch/ -> src/ -> project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(..., description="URL del proyecto Supabase")
    supabase_key: str = Field(..., description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key para operaciones admin"
    )

    # Embeddings (Gemini)
    gemini_api_key: Optional[str] = Field(None, description="API key de Google Gemini")
    embedding_model: str = Field(
        "gemini-embedding-001", description="Modelo de embedding a usar"
    )
    embedding_dimension: int = Field(
        768, gt=0, description="Dimensión de los vectores (768, 1536 o 3072)"
    )
    embedding_timeout_seconds: float = Field(
        5.0, gt=0, description="Timeout por llamada al proveedor de embeddings"
    )
    embedding_max_attempts: int = Field(
        2, ge=1, description="Intentos por llamada antes de declarar el proveedor caído"
    )
    embedding_max_chars: int = Field(
        800, gt=0, description="Largo máximo del texto enviado al proveedor"
    )

    # Rate limit compartido (sync interactivo + backfill)
    provider_rate_per_second: float = Field(
        5.0, gt=0, description="Llamadas por segundo permitidas al proveedor"
    )
    provider_burst: int = Field(5, ge=1, description="Tamaño del bucket de tokens")

    # Redis (cache-aside)
    redis_url: str = Field("redis://localhost:6379/0", description="URL de Redis")
    cache_prefix: str = Field("propmatch", description="Prefijo de todas las keys")
    cache_timeout_seconds: float = Field(
        0.5, gt=0, description="Timeout de cada operación contra Redis"
    )
    cache_ttl_short: int = Field(60, gt=0, description="TTL corto (lecturas de una entidad)")
    cache_ttl_medium: int = Field(300, gt=0, description="TTL medio (páginas de búsqueda)")
    cache_ttl_long: int = Field(3600, gt=0, description="TTL largo (agregados)")
    cache_ttl_day: int = Field(86400, gt=0, description="TTL de un día")

    # Matching
    match_threshold: int = Field(
        70, ge=0, le=100, description="Score mínimo para clasificar como match"
    )
    max_recommendations: int = Field(
        10, ge=0, description="Máximo de recomendaciones devueltas"
    )
    candidate_limit: int = Field(
        200, gt=0, description="Máximo de propiedades candidatas por demanda"
    )

    # Backfill
    backfill_delay_seconds: float = Field(
        0.1, ge=0, description="Pausa mínima entre registros del backfill"
    )
    backfill_lock_ttl_seconds: int = Field(
        3600, gt=0, description="Expiración del lock de instancia única"
    )

    # Worker de sincronización post-mutación
    sync_workers: int = Field(2, ge=1, description="Workers de la cola de sync")
    sync_queue_size: int = Field(100, ge=1, description="Capacidad de la cola de sync")

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")

    @model_validator(mode="after")
    def _check_ttl_order(self) -> "Settings":
        if not (
            self.cache_ttl_short <= self.cache_ttl_medium <= self.cache_ttl_long
        ):
            raise ValueError("Los TTL deben cumplir short <= medium <= long")
        return self


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()


# Constantes del sistema
PROPERTY_TYPES = ["house", "condo", "townhouse", "land", "commercial", "apartment"]

LISTING_TYPES = ["sale", "rent"]

DEMAND_INTENTS = ["buy", "rent"]

# buy -> listings en venta, rent -> listings en alquiler
INTENT_TO_LISTING_TYPE = {
    "buy": "sale",
    "rent": "rent",
}

# Sinónimos en tailandés para enriquecer el texto de embedding
PROPERTY_TYPE_LABELS = {
    "condo": "คอนโด คอนโดมิเนียม",
    "house": "บ้าน บ้านเดี่ยว",
    "townhouse": "ทาวน์เฮ้าส์ ทาวน์โฮม",
    "land": "ที่ดิน",
    "commercial": "อาคารพาณิชย์ พื้นที่เชิงพาณิชย์",
    "apartment": "อพาร์ทเมนท์",
}

LISTING_TYPE_LABELS = {
    "sale": "ขาย sale",
    "rent": "เช่า rent",
}

DEMAND_INTENT_LABELS = {
    "buy": "ต้องการซื้อ buy",
    "rent": "ต้องการเช่า rent",
}

URGENCY_LABELS = {
    "urgent": "ด่วน urgent",
    "normal": "ปกติ normal",
    "not_rush": "ไม่รีบ not in a rush",
}
