"""
Token caching, safety-margin refresh, single-flight refresh and invalidation.
"""
import asyncio
import gc
import unittest

from exceptions import CredentialError
from services.token_manager import BearerCredential, TokenManager


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingFetcher:
    def __init__(self, expires_in: float = 3599, delay: float = 0.0) -> None:
        self.calls = 0
        self.expires_in = expires_in
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return f"token-{self.calls}", self.expires_in


class TestBearerCredential(unittest.TestCase):
    def test_validity_respects_margin(self):
        cred = BearerCredential("t", expires_at=100.0)
        self.assertTrue(cred.is_valid(now=70.0, margin=30.0))
        self.assertFalse(cred.is_valid(now=70.1, margin=30.0))


class TestTokenManager(unittest.IsolatedAsyncioTestCase):
    async def test_cached_token_reused(self):
        fetch = CountingFetcher()
        manager = TokenManager(fetch, clock=FakeClock())
        first = await manager.get_token()
        second = await manager.get_token()
        self.assertEqual(fetch.calls, 1)
        self.assertIs(first, second)

    async def test_refresh_inside_safety_margin(self):
        clock = FakeClock()
        fetch = CountingFetcher(expires_in=100)
        manager = TokenManager(fetch, safety_margin=30, clock=clock)
        self.assertEqual((await manager.get_token()).value, "token-1")
        clock.now += 69
        self.assertEqual((await manager.get_token()).value, "token-1")
        clock.now += 2
        self.assertEqual((await manager.get_token()).value, "token-2")
        self.assertEqual(fetch.calls, 2)

    async def test_concurrent_callers_share_one_refresh(self):
        fetch = CountingFetcher(delay=0.01)
        manager = TokenManager(fetch, clock=FakeClock())
        results = await asyncio.gather(*(manager.get_token() for _ in range(10)))
        self.assertEqual(fetch.calls, 1)
        self.assertEqual({r.value for r in results}, {"token-1"})

    async def test_invalidate_forces_refetch(self):
        fetch = CountingFetcher()
        manager = TokenManager(fetch, clock=FakeClock())
        await manager.get_token()
        manager.invalidate()
        self.assertIsNone(manager.credential)
        self.assertEqual((await manager.get_token()).value, "token-2")

    async def test_failure_propagates_and_is_not_cached(self):
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise CredentialError("Failed to get M-Pesa token (HTTP 400)")
            return "recovered", 3599

        manager = TokenManager(flaky, clock=FakeClock())
        with self.assertRaises(CredentialError):
            await manager.get_token()
        self.assertIsNone(manager.credential)
        self.assertEqual((await manager.get_token()).value, "recovered")
        self.assertEqual(calls, 2)

    async def test_cancelled_waiter_does_not_cancel_refresh(self):
        fetch = CountingFetcher(delay=0.05)
        manager = TokenManager(fetch, clock=FakeClock())
        waiter = asyncio.ensure_future(manager.get_token())
        other = asyncio.ensure_future(manager.get_token())
        await asyncio.sleep(0.01)
        waiter.cancel()
        cred = await other
        self.assertEqual(cred.value, "token-1")
        self.assertEqual(fetch.calls, 1)

    async def test_failed_refresh_without_waiters_reports_nothing(self):
        calls = 0

        async def slow_failure():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(0.02)
                raise CredentialError("Failed to get M-Pesa token (HTTP 500)")
            return "recovered", 3599

        loop = asyncio.get_running_loop()
        reported = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        self.addCleanup(loop.set_exception_handler, previous)

        manager = TokenManager(slow_failure, clock=FakeClock())
        waiter = asyncio.ensure_future(manager.get_token())
        await asyncio.sleep(0.005)
        waiter.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiter

        refresh = manager._refresh
        await asyncio.wait([refresh])
        self.assertTrue(refresh.done())
        self.assertIsNone(manager.credential)
        del refresh, waiter
        gc.collect()
        await asyncio.sleep(0)

        self.assertEqual((await manager.get_token()).value, "recovered")
        del manager
        gc.collect()
        self.assertEqual(reported, [])


if __name__ == "__main__":
    unittest.main()
