"""
Rate limiter de token bucket para el proveedor de embeddings.

Una sola instancia se comparte entre el sync interactivo y el backfill,
así ambos caminos consumen del mismo presupuesto global.
"""

import asyncio
import time
from typing import Awaitable, Callable


class TokenBucketRateLimiter:
    """
    Token bucket async.

    Se reponen `rate_per_second` tokens por segundo hasta `burst`. Cada
    llamada al proveedor consume un token; si no hay, espera lo justo.
    """

    def __init__(
        self,
        rate_per_second: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second debe ser positivo")
        if burst < 1:
            raise ValueError("burst debe ser >= 1")

        self.rate = rate_per_second
        self.capacity = float(burst)
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> float:
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> float:
        """
        Consume un token, esperando si el bucket está vacío.

        Returns:
            Segundos esperados
        """
        async with self._lock:
            self._refill()
            waited = 0.0
            if self._tokens < 1.0:
                waited = (1.0 - self._tokens) / self.rate
                await self._sleep(waited)
                self._refill()
            self._tokens = max(0.0, self._tokens - 1.0)
            return waited
