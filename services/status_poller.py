"""
Bounded polling for the outcome of an application-fee payment.

Polling is read-only: it only looks at the status and never changes it, so a
timeout or cancellation leaves the application exactly as it was (usually
still pending_payment, to be resolved later by the callback).
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import session_scope
from exceptions import ApplicationNotFound
from models import ApplicationStatus
from services.application_store import ApplicationStore

logger = logging.getLogger(__name__)

StatusReader = Callable[[str], Awaitable[Optional[str]]]


class PollOutcome(str, enum.Enum):
    PAID = "paid"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    outcome: PollOutcome
    status: Optional[str]
    reads: int
    elapsed: float

    @property
    def still_pending(self) -> bool:
        return self.outcome is PollOutcome.TIMED_OUT


class StatusPoller:
    def __init__(
        self,
        read_status: StatusReader,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.read_status = read_status
        self.clock = clock
        self.sleep = sleep

    async def wait_for_outcome(
        self,
        application_id: str,
        interval: float = 3.0,
        max_duration: float = 120.0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """
        Read the status every `interval` seconds until it is paid or rejected,
        `max_duration` has elapsed, or `cancel_event` is set.
        """
        if interval <= 0 or max_duration <= 0:
            raise ValueError("interval and max_duration must be positive")

        start = self.clock()
        deadline = start + max_duration
        reads = 0
        status: Optional[str] = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._result(PollOutcome.CANCELLED, status, reads, start)

            status = await self.read_status(application_id)
            reads += 1
            if status is None:
                raise ApplicationNotFound(f"Loan application {application_id} not found")
            if status == ApplicationStatus.PAID.value:
                return self._result(PollOutcome.PAID, status, reads, start)
            if status == ApplicationStatus.REJECTED.value:
                return self._result(PollOutcome.REJECTED, status, reads, start)

            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            await self.sleep(min(interval, remaining))
            if self.clock() >= deadline:
                break

        logger.info("Stopped waiting for %s after %d reads; status still %s", application_id, reads, status)
        return self._result(PollOutcome.TIMED_OUT, status, reads, start)

    def _result(self, outcome: PollOutcome, status: Optional[str], reads: int, start: float) -> PollResult:
        return PollResult(outcome=outcome, status=status, reads=reads, elapsed=self.clock() - start)


def store_status_reader(session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> StatusReader:
    """Read status straight from the record store, one short session per tick."""

    async def read(application_id: str) -> Optional[str]:
        async with session_scope(session_factory) as session:
            return await ApplicationStore(session).get_status(application_id)

    return read


def http_status_reader(client: httpx.AsyncClient, base_url: str = "") -> StatusReader:
    """Read status through GET /api/payments/{id}/status, as a remote client would."""

    async def read(application_id: str) -> Optional[str]:
        response = await client.get(f"{base_url.rstrip('/')}/api/payments/{application_id}/status")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get("status")

    return read
