"""
Cached OAuth bearer credential for the Daraja API.

A credential is reused while more than `safety_margin` seconds remain before
it expires. Refreshes are single-flight: callers arriving while a fetch is in
progress await the same task instead of starting another.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 30.0


@dataclass(frozen=True)
class BearerCredential:
    value: str
    expires_at: float  # monotonic clock seconds

    def remaining(self, now: float) -> float:
        return self.expires_at - now

    def is_valid(self, now: float, margin: float = DEFAULT_SAFETY_MARGIN) -> bool:
        return self.remaining(now) >= margin


# Fetches a fresh token; returns (access_token, expires_in_seconds).
TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


def _retrieve_exception(task: asyncio.Task) -> None:
    # a failed refresh may outlive every waiter; mark its error as seen
    if not task.cancelled():
        task.exception()


class TokenManager:
    def __init__(
        self,
        fetch: TokenFetcher,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._safety_margin = safety_margin
        self._clock = clock
        self._credential: Optional[BearerCredential] = None
        self._refresh: Optional[asyncio.Task] = None

    @property
    def credential(self) -> Optional[BearerCredential]:
        return self._credential

    async def get_token(self) -> BearerCredential:
        credential = self._credential
        if credential is not None and credential.is_valid(self._clock(), self._safety_margin):
            return credential

        if self._refresh is None or self._refresh.done():
            self._refresh = asyncio.ensure_future(self._do_refresh())
            self._refresh.add_done_callback(_retrieve_exception)
        # shield: one caller giving up must not cancel the fetch for the others
        return await asyncio.shield(self._refresh)

    def invalidate(self) -> None:
        """Drop the cached credential, e.g. after the gateway answered 401."""
        if self._credential is not None:
            logger.info("Discarding cached M-Pesa access token")
        self._credential = None

    async def _do_refresh(self) -> BearerCredential:
        logger.info("Requesting M-Pesa OAuth token")
        value, expires_in = await self._fetch()
        credential = BearerCredential(value=value, expires_at=self._clock() + float(expires_in))
        self._credential = credential
        logger.info("M-Pesa OAuth token obtained, expires in %ss", int(expires_in))
        return credential
