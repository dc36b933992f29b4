"""Optional schema features, detected once when the application starts."""

import logging
from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger("trademart.api")


@dataclass(frozen=True)
class SchemaCapabilities:
    lead_status_history: bool = True
    vendor_preferences: bool = True
    notifications: bool = True

    @classmethod
    async def detect(cls, engine: AsyncEngine) -> "SchemaCapabilities":
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

        capabilities = cls(
            lead_status_history="lead_status_history" in tables,
            vendor_preferences="vendor_preferences" in tables,
            notifications="notifications" in tables,
        )
        missing = [name for name, present in vars(capabilities).items() if not present]
        if missing:
            logger.warning("Optional tables missing; related features disabled", extra={"missing_tables": missing})
        return capabilities
