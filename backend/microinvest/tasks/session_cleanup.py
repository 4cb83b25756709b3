import asyncio
import logging

from microinvest.core.database import AsyncSessionLocal
from microinvest.scheduler.celery_app import app
from microinvest.services.session_service import SessionService

logger = logging.getLogger(__name__)


async def _cleanup_sessions_async() -> dict:
    async with AsyncSessionLocal() as session:
        deactivated = await SessionService(session).cleanup_expired()
    return {"deactivated": deactivated}


@app.task(name="microinvest.tasks.session_cleanup.cleanup_sessions")
def cleanup_sessions() -> dict:
    """Celery task to deactivate expired and idle sessions."""
    return asyncio.run(_cleanup_sessions_async())
