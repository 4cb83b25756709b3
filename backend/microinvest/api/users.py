"""
Users API Router: registration, account, profile and sessions.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import AccountStatus, ExperienceLevel, RiskTolerance, SessionType
from microinvest.services.account_service import AccountService
from microinvest.services.fees import FeeSchedule
from microinvest.services.session_service import SessionService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class RegisterRequest(BaseModel):
    username: str
    email: str
    risk_tolerance: Optional[RiskTolerance] = None
    experience_level: Optional[ExperienceLevel] = None


class AccountUpdateRequest(BaseModel):
    email: Optional[str] = None
    risk_tolerance: Optional[RiskTolerance] = None
    experience_level: Optional[ExperienceLevel] = None


class AccountSchema(BaseModel):
    id: int
    username: str
    email: str
    status: AccountStatus
    is_admin: bool
    virtual_balance: Decimal
    total_invested: Decimal
    total_returns: Decimal
    risk_tolerance: Optional[RiskTolerance]
    experience_level: Optional[ExperienceLevel]
    created_at: Optional[datetime]
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class ProfileRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    investment_goal: Optional[str] = None
    bio: Optional[str] = None


class ProfileSchema(ProfileRequest):
    user_id: int

    class Config:
        from_attributes = True


class SessionRequest(BaseModel):
    session_type: SessionType = SessionType.WEB


class SessionSchema(BaseModel):
    id: int
    session_token: str
    session_type: SessionType
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    active: bool

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.post("/register", response_model=AccountSchema, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    fees: FeeSchedule = Depends(get_fees),
):
    """Create an account and its funded default portfolio."""
    return await AccountService(db, fees=fees).register(
        payload.username,
        payload.email,
        risk_tolerance=payload.risk_tolerance,
        experience_level=payload.experience_level,
    )


@router.get("/me", response_model=AccountSchema)
async def get_me(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).get_by_username(username)


@router.patch("/me", response_model=AccountSchema)
async def update_me(
    payload: AccountUpdateRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).update_account(
        username,
        email=payload.email,
        risk_tolerance=payload.risk_tolerance,
        experience_level=payload.experience_level,
    )


@router.post("/me/sync", response_model=AccountSchema)
async def sync_me(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    """Refresh account balances from the default portfolio."""
    return await AccountService(db).sync_balances(username)


@router.get("/me/overview")
async def get_overview(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await AccountService(db).get_overview(username)


@router.get("/me/profile", response_model=Optional[ProfileSchema])
async def get_profile(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).get_profile(username)


@router.put("/me/profile", response_model=ProfileSchema)
async def update_profile(
    payload: ProfileRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).update_profile(username, **payload.model_dump())


@router.post("/me/deactivate", response_model=AccountSchema)
async def deactivate_me(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).deactivate(username)


@router.post("/me/sessions", response_model=SessionSchema, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionRequest,
    request: Request,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await SessionService(db).create_session(
        username,
        session_type=payload.session_type,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/me/sessions", response_model=list[SessionSchema])
async def list_sessions(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await SessionService(db).list_active(username)


@router.delete("/me/sessions", status_code=status.HTTP_200_OK)
async def logout_all(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    count = await SessionService(db).logout_all(username)
    return {"logged_out": count}
