"""
Taxonomía de errores del motor.

- NotFoundError / BadRequestError: errores de cliente, se propagan.
- ProviderUnavailableError: el proveedor de embeddings no respondió; el
  motor de matching lo convierte en un resultado degradado.
- CacheError: falla de Redis; la capa de cache lo convierte en miss.
- PersistenceWarning: escritura de auditoría fallida, solo se loguea.
- EmbeddingDimensionError: configuración inconsistente, es fatal.
"""


class PropmatchError(Exception):
    """Clase base de errores del sistema."""


class NotFoundError(PropmatchError):
    """La entidad pedida no existe."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} no encontrado: {resource_id}")


class BadRequestError(PropmatchError):
    """Datos de entrada inválidos (ej: presupuesto mínimo > máximo)."""


class ProviderUnavailableError(PropmatchError):
    """El proveedor de embeddings no está disponible o excedió el timeout."""


class CacheError(PropmatchError):
    """Error del servicio de cache."""


class EmbeddingDimensionError(PropmatchError):
    """Un vector no tiene la dimensión configurada para el modelo."""

    def __init__(self, model: str, expected: int, actual: int):
        self.model = model
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Dimensión inválida para {model}: esperada {expected}, recibida {actual}"
        )


class BackfillAlreadyRunningError(PropmatchError):
    """Ya hay otra instancia del backfill corriendo."""


class QueueFullError(PropmatchError):
    """La cola de sincronización está llena."""


class PersistenceWarning(UserWarning):
    """La escritura de un registro de auditoría falló (no fatal)."""
