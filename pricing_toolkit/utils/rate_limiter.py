import asyncio
import time


class AsyncRateLimiter:
    """
    A simple token-bucket limiter shared by every caller of one source.

    rate: requests per second, may be fractional (0.9 = one request every
    1.1 s). burst: how many requests may go out back to back.
    """

    def __init__(self, rate: float, burst: int = 1) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self._rate = float(rate)
        self._burst = max(1, int(burst))
        self._tokens = float(self._burst)
        self._last = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                elapsed = now - self._last
                # Replenish with fractional tokens
                self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
                self._last = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                # How long until one token appears
                need = 1.0 - self._tokens
                sleep_s = max(need / self._rate, 0.001)
            await asyncio.sleep(sleep_s)

    async def __aenter__(self) -> "AsyncRateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc) -> None:
        return None
