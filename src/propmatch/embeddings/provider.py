"""
Cliente del proveedor de embeddings.

Usa el modelo gemini-embedding-001 de Google para generar vectores de
dimensión fija. Cualquier error de red, timeout o respuesta inválida se
reporta como ProviderUnavailableError; un vector de dimensión incorrecta
es un error de configuración (EmbeddingDimensionError) y no se reintenta.
"""

import asyncio
import math
import re
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from propmatch.config import Settings
from propmatch.embeddings.rate_limiter import TokenBucketRateLimiter
from propmatch.errors import EmbeddingDimensionError, ProviderUnavailableError

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str, max_chars: int = 800) -> str:
    """Colapsa espacios y trunca para no exceder el límite del proveedor."""
    return _WHITESPACE.sub(" ", text).strip()[:max_chars]


class BaseEmbeddingProvider(ABC):
    """Clase base para proveedores de embeddings."""

    provider_name: str = "base"

    def __init__(
        self,
        model: str,
        dimension: int,
        timeout: float = 5.0,
        max_attempts: int = 2,
        max_chars: int = 800,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        retry_wait=None,
    ):
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.max_chars = max_chars
        self.rate_limiter = rate_limiter
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    @abstractmethod
    async def _embed(self, text: str) -> list[float]:
        """Llamada cruda al proveedor."""

    @abstractmethod
    async def _probe(self) -> None:
        """Llamada liviana que falla si el proveedor no responde."""

    async def _throttled_embed(self, text: str) -> list[float]:
        if self.rate_limiter:
            await self.rate_limiter.acquire()
        return await self._embed(text)

    async def embed(self, text: str) -> list[float]:
        """
        Genera el embedding de un texto.

        Returns:
            Vector de `dimension` floats

        Raises:
            ProviderUnavailableError: timeout o error del proveedor
            EmbeddingDimensionError: el modelo devolvió otra dimensión
        """
        normalized = normalize_text(text, self.max_chars)
        if not normalized:
            raise ValueError("No se puede generar embedding de un texto vacío")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self._retry_wait,
                # Un timeout no se reintenta: el caller no puede quedar colgado
                retry=retry_if_not_exception_type(asyncio.TimeoutError),
                reraise=True,
            ):
                with attempt:
                    # La espera por un token cuenta dentro del timeout
                    values = await asyncio.wait_for(
                        self._throttled_embed(normalized), timeout=self.timeout
                    )
        except asyncio.TimeoutError as e:
            logger.warning(
                "Timeout del proveedor de embeddings",
                provider=self.provider_name,
                timeout=self.timeout,
            )
            raise ProviderUnavailableError(
                f"Timeout de {self.timeout}s en {self.provider_name}"
            ) from e
        except Exception as e:
            logger.warning(
                "Error del proveedor de embeddings",
                provider=self.provider_name,
                error=str(e),
            )
            raise ProviderUnavailableError(str(e)) from e

        vector = [float(v) for v in values]
        if len(vector) != self.dimension:
            logger.error(
                "Dimensión de embedding inesperada",
                model=self.model,
                expected=self.dimension,
                actual=len(vector),
            )
            raise EmbeddingDimensionError(self.model, self.dimension, len(vector))

        logger.debug(
            "Embedding generado",
            provider=self.provider_name,
            text_length=len(normalized),
            embedding_dim=len(vector),
        )
        return vector

    async def is_available(self) -> bool:
        """Indica si el proveedor responde dentro del timeout. Nunca lanza."""
        try:
            await asyncio.wait_for(self._probe(), timeout=self.timeout)
            return True
        except Exception as e:
            logger.info(
                "Proveedor de embeddings no disponible",
                provider=self.provider_name,
                error=str(e),
            )
            return False

    @staticmethod
    def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
        """
        Calcula la similitud de coseno entre dos vectores.

        Returns:
            Similitud en [-1, 1]; 0.0 si algún vector es nulo

        Raises:
            ValueError: si los vectores tienen distinta dimensión
        """
        if len(vec1) != len(vec2):
            raise ValueError(
                f"Los vectores deben tener la misma dimensión ({len(vec1)} != {len(vec2)})"
            )

        dot_product = sum(a * b for a, b in zip(vec1, vec2))
        norm1 = math.sqrt(sum(a * a for a in vec1))
        norm2 = math.sqrt(sum(b * b for b in vec2))

        if norm1 == 0 or norm2 == 0:
            return 0.0

        return max(-1.0, min(1.0, dot_product / (norm1 * norm2)))


class GeminiEmbeddingProvider(BaseEmbeddingProvider):
    """Proveedor de embeddings de Google Gemini."""

    provider_name = "gemini"

    def __init__(self, api_key: str, **kwargs):
        from google import genai

        if not api_key:
            raise ValueError("GEMINI_API_KEY es requerida para embeddings")

        super().__init__(**kwargs)
        self.client = genai.Client(api_key=api_key)
        logger.info(
            "GeminiEmbeddingProvider inicializado",
            model=self.model,
            dim=self.dimension,
        )

    async def _embed(self, text: str) -> list[float]:
        from google.genai import types

        response = await self.client.aio.models.embed_content(
            model=self.model,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=self.dimension),
        )
        return list(response.embeddings[0].values)

    async def _probe(self) -> None:
        await self.client.aio.models.get(model=self.model)


def get_embedding_provider(
    settings: Settings,
    rate_limiter: Optional[TokenBucketRateLimiter] = None,
) -> BaseEmbeddingProvider:
    """
    Factory del proveedor de embeddings configurado.

    Args:
        settings: Configuración de la aplicación
        rate_limiter: Bucket compartido (sync interactivo + backfill)

    Returns:
        Instancia del proveedor
    """
    return GeminiEmbeddingProvider(
        api_key=settings.gemini_api_key,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
        timeout=settings.embedding_timeout_seconds,
        max_attempts=settings.embedding_max_attempts,
        max_chars=settings.embedding_max_chars,
        rate_limiter=rate_limiter,
    )
