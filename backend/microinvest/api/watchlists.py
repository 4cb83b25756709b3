"""
Watchlists API Router.
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_quotes
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.services.market_data import QuoteProvider
from microinvest.services.watchlist_service import WatchlistService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class WatchlistCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_default: bool = False


class WatchlistUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None


class SymbolRequest(BaseModel):
    symbol: str


class WatchlistSchema(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_default: bool
    symbols: list[str]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("", response_model=list[WatchlistSchema])
async def list_watchlists(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).list_watchlists(username)


@router.post("", response_model=WatchlistSchema, status_code=status.HTTP_201_CREATED)
async def create_watchlist(
    payload: WatchlistCreate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).create_watchlist(
        username, payload.name, payload.description, payload.is_default
    )


@router.get("/{watchlist_id}", response_model=WatchlistSchema)
async def get_watchlist(
    watchlist_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).get_watchlist(watchlist_id, username)


@router.patch("/{watchlist_id}", response_model=WatchlistSchema)
async def update_watchlist(
    watchlist_id: int,
    payload: WatchlistUpdate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).update_watchlist(
        watchlist_id, username, payload.name, payload.description, payload.is_default
    )


@router.delete("/{watchlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_watchlist(
    watchlist_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
) -> None:
    await WatchlistService(db, quotes).delete_watchlist(watchlist_id, username)


@router.post("/{watchlist_id}/symbols", response_model=WatchlistSchema)
async def add_symbol(
    watchlist_id: int,
    payload: SymbolRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).add_symbol(watchlist_id, username, payload.symbol)


@router.delete("/{watchlist_id}/symbols/{symbol}", response_model=WatchlistSchema)
async def remove_symbol(
    watchlist_id: int,
    symbol: str,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await WatchlistService(db, quotes).remove_symbol(watchlist_id, username, symbol)
