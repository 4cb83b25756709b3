"""
Order expiry sweep.

Marks active orders whose expiry date has passed as EXPIRED.
"""
import asyncio
import logging

from microinvest.core.database import AsyncSessionLocal
from microinvest.scheduler.celery_app import app
from microinvest.services.order_service import OrderService

logger = logging.getLogger(__name__)


async def _expire_orders_async() -> dict:
    async with AsyncSessionLocal() as session:
        result = await OrderService(session).expire_orders()
    logger.info(f"Order expiry sweep: {result}")
    return result


@app.task(name="microinvest.tasks.order_expiry.expire_orders")
def expire_orders() -> dict:
    """Celery task to expire stale orders."""
    return asyncio.run(_expire_orders_async())
