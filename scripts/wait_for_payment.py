"""
Wait for the application-fee payment of one loan application to resolve,
polling the running API the way the web client does.
Run: python -m scripts.wait_for_payment app-123abc --base-url http://localhost:3005
"""
import argparse
import asyncio
import os
import sys

# Add parent so we can import from the project
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from config import settings
from services.status_poller import PollOutcome, StatusPoller, http_status_reader

MESSAGES = {
    PollOutcome.PAID: "Payment received. Your loan is being processed.",
    PollOutcome.REJECTED: "Payment was not completed. Please try again with a new application.",
    PollOutcome.TIMED_OUT: "Still waiting for M-Pesa confirmation. We'll update you by SMS once it arrives.",
    PollOutcome.CANCELLED: "Stopped waiting.",
}


async def main(args: argparse.Namespace) -> int:
    async with httpx.AsyncClient(base_url=args.base_url, timeout=10.0) as client:
        poller = StatusPoller(http_status_reader(client))
        try:
            result = await poller.wait_for_outcome(
                args.application_id,
                interval=args.interval,
                max_duration=args.timeout,
            )
        except asyncio.CancelledError:
            print(MESSAGES[PollOutcome.CANCELLED])
            return 130
    print(f"{result.outcome.value} after {result.reads} checks: {MESSAGES[result.outcome]}")
    return 0 if result.outcome is PollOutcome.PAID else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("application_id")
    parser.add_argument("--base-url", default="http://localhost:3005")
    parser.add_argument("--interval", type=float, default=settings.poll_interval_seconds)
    parser.add_argument("--timeout", type=float, default=settings.poll_max_duration_seconds)
    try:
        sys.exit(asyncio.run(main(parser.parse_args())))
    except KeyboardInterrupt:
        print(MESSAGES[PollOutcome.CANCELLED])
        sys.exit(130)
