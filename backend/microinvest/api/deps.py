"""
Shared FastAPI dependencies: caller identity, quote provider, fee schedule.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.database import get_db
from microinvest.core.exceptions import PermissionDeniedError
from microinvest.core.security import get_current_username
from microinvest.models.user import UserAccount
from microinvest.services.common import get_user
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider, get_default_provider


def get_quotes() -> QuoteProvider:
    return get_default_provider()


def get_fees() -> FeeSchedule:
    return FeeSchedule.from_settings()


async def get_current_user(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> UserAccount:
    return await get_user(db, username)


async def require_admin(user: UserAccount = Depends(get_current_user)) -> UserAccount:
    if not user.is_admin:
        raise PermissionDeniedError("Administrator access required")
    return user
