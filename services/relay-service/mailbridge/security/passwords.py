"""Adaptive password hashing executed off the event loop."""

from __future__ import annotations

from anyio import CapacityLimiter, to_thread
from passlib.context import CryptContext


class PasswordHasher:
    """Argon2 hashing and verification dispatched to a bounded worker pool.

    Hashing is CPU bound, so every call runs in a worker thread; at most
    ``workers`` hashes run at once and the remaining callers wait without
    blocking request handling.
    """

    def __init__(self, *, rounds: int = 3, workers: int = 4) -> None:
        self._context = CryptContext(schemes=["argon2"], deprecated="auto", argon2__rounds=rounds)
        self._workers = workers
        self._limiter: CapacityLimiter | None = None

    def _get_limiter(self) -> CapacityLimiter:
        # Created lazily so the limiter binds to the running event loop.
        if self._limiter is None:
            self._limiter = CapacityLimiter(self._workers)
        return self._limiter

    async def hash(self, password: str) -> str:
        """Return the salted hash to persist for ``password``."""
        return await to_thread.run_sync(self._context.hash, password, limiter=self._get_limiter())

    async def verify(self, password: str, password_hash: str) -> bool:
        return await to_thread.run_sync(
            self._context.verify, password, password_hash, limiter=self._get_limiter()
        )

    async def dummy_verify(self) -> None:
        """Spend the same effort as a real verification for unknown accounts."""
        await to_thread.run_sync(self._context.dummy_verify, limiter=self._get_limiter())
