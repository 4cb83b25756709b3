"""
Settlement sweep: completes PENDING transactions past their T+N settlement date.
"""
import asyncio
import logging

from microinvest.core.database import AsyncSessionLocal
from microinvest.scheduler.celery_app import app
from microinvest.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)


async def _settle_transactions_async() -> dict:
    async with AsyncSessionLocal() as session:
        result = await TransactionService(session).settle_transactions()
    logger.info(f"Settlement sweep: {result}")
    return result


@app.task(name="microinvest.tasks.settlement.settle_transactions")
def settle_transactions() -> dict:
    return asyncio.run(_settle_transactions_async())
