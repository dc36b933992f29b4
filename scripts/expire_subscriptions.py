"""Expire lapsed vendor subscriptions. Meant to run from a scheduler (cron, container job)."""

import asyncio
import logging

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.db import dispose_engine, get_db, get_engine
from trademart.services.subscription_service import SubscriptionService


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    try:
        capabilities = await SchemaCapabilities.detect(get_engine())
        async for session in get_db():
            expired = await SubscriptionService.expire_lapsed_subscriptions(session, capabilities=capabilities)
            print(f"✓ Expired {expired} subscription(s)")
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
