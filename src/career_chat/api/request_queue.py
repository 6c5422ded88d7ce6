"""Per-session request serialization.

Overlapping sends on one session run one after another in arrival order, so
each exchange reads a history that already contains the previous one. A
global semaphore caps how many exchanges talk to the provider at once.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict
from uuid import UUID

import structlog

logger = structlog.get_logger()


@dataclass
class SessionSlot:
    """Lock and waiter count for one session."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class RequestQueue:
    """Serializes work per session and bounds overall concurrency."""

    def __init__(self, max_concurrent: int = 10, queue_timeout: float = 90.0) -> None:
        """Initialize request queue with configurable concurrency."""
        self.max_concurrent = max_concurrent
        self.queue_timeout = queue_timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.active_requests = 0
        self._slots: Dict[UUID, SessionSlot] = {}
        logger.info(
            "request_queue_initialized",
            max_concurrent=max_concurrent,
            queue_timeout=queue_timeout,
        )

    def pending(self, session_id: UUID) -> int:
        """Number of requests holding or waiting for a session."""
        slot = self._slots.get(session_id)
        return slot.waiters if slot else 0

    @contextlib.asynccontextmanager
    async def acquire(self, session_id: UUID) -> AsyncIterator[None]:
        """Hold the session's lock and a global concurrency slot."""
        slot = self._slots.setdefault(session_id, SessionSlot())
        slot.waiters += 1
        try:
            async with slot.lock:
                async with self.semaphore:
                    self.active_requests += 1
                    try:
                        yield
                    finally:
                        self.active_requests -= 1
        finally:
            slot.waiters -= 1
            if slot.waiters == 0 and self._slots.get(session_id) is slot:
                del self._slots[session_id]

    async def enqueue_request(
        self,
        session_id: UUID,
        task: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run ``task`` once earlier requests for the session have finished."""

        async def run() -> Any:
            async with self.acquire(session_id):
                return await task(*args, **kwargs)

        try:
            return await asyncio.wait_for(run(), timeout=self.queue_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "request_timeout",
                session_id=str(session_id),
                timeout=self.queue_timeout,
            )
            raise TimeoutError("Request processing timed out")

    async def cleanup(self) -> None:
        """Forget idle session slots."""
        idle = [sid for sid, slot in self._slots.items() if slot.waiters == 0]
        for sid in idle:
            del self._slots[sid]
        logger.info("request_queue_cleaned_up", active_sessions=len(self._slots))

