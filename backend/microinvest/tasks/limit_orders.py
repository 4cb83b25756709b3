"""
Pending order sweep.

Re-checks active LIMIT and stop orders against the latest quote and
fills those whose price condition is met.
"""
import asyncio
import logging

from microinvest.core.database import AsyncSessionLocal
from microinvest.scheduler.celery_app import app
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import get_default_provider
from microinvest.services.order_service import OrderService

logger = logging.getLogger(__name__)


async def _process_limit_orders_async() -> dict:
    async with AsyncSessionLocal() as session:
        service = OrderService(session, get_default_provider(), FeeSchedule.from_settings())
        result = await service.process_pending_limit_orders()
    if result["filled"] or result["failed"]:
        logger.info(f"Limit order sweep: {result}")
    return result


@app.task(name="microinvest.tasks.limit_orders.process_limit_orders")
def process_limit_orders() -> dict:
    """Celery task to fill pending limit orders whose price was reached."""
    return asyncio.run(_process_limit_orders_async())
