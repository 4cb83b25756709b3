"""
Mark-to-market sweep.

Refreshes security prices and revalues every active position and its
portfolio total.
"""
import asyncio
import logging

from microinvest.core.database import AsyncSessionLocal
from microinvest.scheduler.celery_app import app
from microinvest.services.market_data import get_default_provider
from microinvest.services.position_service import PositionService

logger = logging.getLogger(__name__)


async def _revalue_positions_async() -> dict:
    async with AsyncSessionLocal() as session:
        result = await PositionService(session).revalue_all(get_default_provider())
    if result["failed_symbols"]:
        logger.warning(f"Revaluation could not price: {', '.join(result['failed_symbols'])}")
    logger.info(f"Revalued {result['positions']} positions across {result['portfolios']} portfolios")
    return result


@app.task(name="microinvest.tasks.position_revaluation.revalue_positions")
def revalue_positions() -> dict:
    return asyncio.run(_revalue_positions_async())
