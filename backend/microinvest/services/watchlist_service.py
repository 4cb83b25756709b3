import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.config import settings
from microinvest.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from microinvest.models.enums import AuditEventType
from microinvest.models.user import UserAccount
from microinvest.models.watchlist import Watchlist
from microinvest.services.audit_service import AuditService
from microinvest.services.common import get_user
from microinvest.services.market_data import QuoteProvider
from microinvest.services.security_service import SecurityService, normalize_symbol

logger = logging.getLogger(__name__)


class WatchlistService:
    """Named symbol lists, at most MAX_WATCHLISTS_PER_USER per user."""

    def __init__(self, session: AsyncSession, quotes: Optional[QuoteProvider] = None,
                 max_per_user: Optional[int] = None):
        self.session = session
        self.securities = SecurityService(session, quotes)
        self.audit = AuditService(session)
        self.max_per_user = settings.MAX_WATCHLISTS_PER_USER if max_per_user is None else max_per_user

    async def _count(self, user: UserAccount) -> int:
        result = await self.session.execute(
            select(func.count(Watchlist.id)).where(Watchlist.user_id == user.id)
        )
        return result.scalar_one()

    async def _name_taken(self, user: UserAccount, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Watchlist.id).where(Watchlist.user_id == user.id, Watchlist.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Watchlist.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def _clear_default(self, user: UserAccount, keep_id: Optional[int] = None) -> None:
        for watchlist in await self._list(user):
            if watchlist.id != keep_id:
                watchlist.is_default = False

    async def _list(self, user: UserAccount) -> List[Watchlist]:
        result = await self.session.execute(
            select(Watchlist).where(Watchlist.user_id == user.id).order_by(Watchlist.id)
        )
        return list(result.scalars().all())

    async def _get_owned(self, watchlist_id: int, username: str) -> Watchlist:
        user = await get_user(self.session, username)
        watchlist = await self.session.get(Watchlist, watchlist_id)
        if watchlist is None:
            raise NotFoundError("Watchlist", watchlist_id)
        if watchlist.user_id != user.id:
            raise PermissionDeniedError("You do not have access to this watchlist",
                                        {"watchlist_id": watchlist_id})
        return watchlist

    async def create_watchlist(
        self,
        username: str,
        name: str,
        description: Optional[str] = None,
        is_default: bool = False,
    ) -> Watchlist:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Watchlist name is required")
        user = await get_user(self.session, username)
        count = await self._count(user)
        if count >= self.max_per_user:
            raise ValidationError(f"Maximum number of watchlists ({self.max_per_user}) reached",
                                  {"limit": self.max_per_user})
        if await self._name_taken(user, name):
            raise AlreadyExistsError(f"Watchlist '{name}' already exists", {"name": name})

        make_default = is_default or count == 0
        if make_default:
            await self._clear_default(user)
        watchlist = Watchlist(user_id=user.id, name=name, description=description,
                              is_default=make_default, securities=[])
        self.session.add(watchlist)
        await self.session.flush()
        self.audit.record(AuditEventType.DATA_CHANGE, "Create watchlist", user_id=user.id,
                          resource_id=watchlist.id)
        await self.session.commit()
        logger.info(f"Created watchlist {watchlist.id} '{name}' for {username}")
        return watchlist

    async def get_watchlist(self, watchlist_id: int, username: str) -> Watchlist:
        return await self._get_owned(watchlist_id, username)

    async def list_watchlists(self, username: str) -> List[Watchlist]:
        user = await get_user(self.session, username)
        return await self._list(user)

    async def get_default_watchlist(self, username: str) -> Optional[Watchlist]:
        user = await get_user(self.session, username)
        result = await self.session.execute(
            select(Watchlist).where(Watchlist.user_id == user.id, Watchlist.is_default.is_(True))
        )
        return result.scalars().first()

    async def update_watchlist(
        self,
        watchlist_id: int,
        username: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_default: Optional[bool] = None,
    ) -> Watchlist:
        watchlist = await self._get_owned(watchlist_id, username)
        user = await get_user(self.session, username)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Watchlist name is required")
            if await self._name_taken(user, name, exclude_id=watchlist.id):
                raise AlreadyExistsError(f"Watchlist '{name}' already exists", {"name": name})
            watchlist.name = name
        if description is not None:
            watchlist.description = description
        if is_default:
            await self._clear_default(user, keep_id=watchlist.id)
            watchlist.is_default = True
        await self.session.commit()
        return watchlist

    async def delete_watchlist(self, watchlist_id: int, username: str) -> None:
        watchlist = await self._get_owned(watchlist_id, username)
        was_default = watchlist.is_default
        user_id = watchlist.user_id
        await self.session.delete(watchlist)
        await self.session.flush()
        if was_default:
            result = await self.session.execute(
                select(Watchlist).where(Watchlist.user_id == user_id).order_by(Watchlist.id).limit(1)
            )
            successor = result.scalar_one_or_none()
            if successor is not None:
                successor.is_default = True
        await self.session.commit()
        logger.info(f"Deleted watchlist {watchlist_id}")

    async def add_symbol(self, watchlist_id: int, username: str, symbol: str) -> Watchlist:
        watchlist = await self._get_owned(watchlist_id, username)
        symbol = normalize_symbol(symbol)
        if symbol in watchlist.symbols:
            raise AlreadyExistsError(f"{symbol} is already in this watchlist", {"symbol": symbol})
        security = await self.securities.get_or_create(symbol)
        watchlist.securities.append(security)
        await self.session.commit()
        return watchlist

    async def remove_symbol(self, watchlist_id: int, username: str, symbol: str) -> Watchlist:
        watchlist = await self._get_owned(watchlist_id, username)
        symbol = normalize_symbol(symbol)
        match = next((s for s in watchlist.securities if s.symbol == symbol), None)
        if match is None:
            raise NotFoundError("WatchlistSymbol", symbol)
        watchlist.securities.remove(match)
        await self.session.commit()
        return watchlist
