"""
Account registration, status lifecycle, profiles, sessions and the
startup admin bootstrap.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from microinvest.core.config import settings
from microinvest.core.exceptions import (
    AlreadyExistsError,
    AuthenticationError,
    InvalidStateTransitionError,
    ValidationError,
)
from microinvest.models import AuditLog, Portfolio
from microinvest.models.enums import AccountStatus, AuditEventType, OrderSide, SessionType
from microinvest.services.account_service import AccountService, bootstrap_admin
from microinvest.services.order_service import OrderService
from microinvest.services.session_service import SessionService

NOW = datetime(2026, 4, 1, 9, 0)


@pytest.fixture
def accounts(session, fees):
    return AccountService(session, fees=fees)


# ============================================================
# REGISTRATION
# ============================================================

class TestRegistration:

    async def test_opens_funded_default_portfolio(self, session, alice):
        result = await session.execute(select(Portfolio).where(Portfolio.user_id == alice.id))
        portfolios = result.scalars().all()
        assert len(portfolios) == 1
        assert portfolios[0].is_default
        assert portfolios[0].name == settings.DEFAULT_PORTFOLIO_NAME
        assert portfolios[0].cash_balance == Decimal("1000.00")
        assert alice.virtual_balance == Decimal("1000.00")
        assert alice.status is AccountStatus.ACTIVE
        assert not alice.is_admin

    async def test_default_starting_cash(self, accounts, quotes):
        user = await accounts.register("carol", "carol@example.com")
        assert user.virtual_balance == settings.DEFAULT_STARTING_CASH

    async def test_email_is_normalized(self, accounts, quotes):
        user = await accounts.register("dave", "  Dave@Example.COM ")
        assert user.email == "dave@example.com"

    async def test_duplicate_username(self, accounts, alice):
        with pytest.raises(AlreadyExistsError) as exc_info:
            await accounts.register("alice", "other@example.com")
        assert exc_info.value.details == {"field": "username"}

    async def test_duplicate_email(self, accounts, alice):
        with pytest.raises(AlreadyExistsError) as exc_info:
            await accounts.register("alice2", "ALICE@example.com")
        assert exc_info.value.details == {"field": "email"}

    @pytest.mark.parametrize("username,email", [
        ("ab", "ab@example.com"),
        ("has space", "x@example.com"),
        ("valid_name", "not-an-email"),
    ])
    async def test_invalid_input(self, accounts, username, email):
        with pytest.raises(ValidationError):
            await accounts.register(username, email)

    async def test_registration_is_audited(self, session, alice):
        result = await session.execute(select(AuditLog).where(AuditLog.user_id == alice.id))
        actions = [entry.action for entry in result.scalars().all()]
        assert "Register account" in actions


# ============================================================
# STATUS LIFECYCLE
# ============================================================

class TestAccountStatus:

    async def test_suspend_and_reactivate(self, accounts, alice):
        assert (await accounts.suspend("alice")).status is AccountStatus.SUSPENDED
        assert (await accounts.activate("alice")).status is AccountStatus.ACTIVE

    async def test_cannot_suspend_twice(self, accounts, alice):
        await accounts.suspend("alice")
        with pytest.raises(InvalidStateTransitionError):
            await accounts.suspend("alice")

    async def test_deactivated_account_can_be_reactivated(self, accounts, alice):
        await accounts.deactivate("alice")
        with pytest.raises(InvalidStateTransitionError):
            await accounts.suspend("alice")
        assert (await accounts.activate("alice")).status is AccountStatus.ACTIVE

    async def test_list_by_status(self, accounts, alice, bob):
        await accounts.suspend("bob")
        suspended = await accounts.list_accounts(status=AccountStatus.SUSPENDED)
        assert [u.username for u in suspended] == ["bob"]


# ============================================================
# BALANCES AND PROFILE
# ============================================================

class TestBalancesAndProfile:

    async def test_sync_balances_mirrors_default_portfolio(self, session, accounts, quotes, fees, portfolio):
        orders = OrderService(session, quotes=quotes, fees=fees)
        await orders.place_order("alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("5"))
        quotes.set_price("SEC1", "120")
        await orders.place_order("alice", portfolio.id, "SEC1", OrderSide.SELL, Decimal("2"))

        user = await accounts.sync_balances("alice")
        assert user.virtual_balance == Decimal("740.00")
        # realized 40 on the sale plus 3 shares marked 20 above cost
        assert user.total_returns == Decimal("100.00")

    async def test_profile_created_on_first_update(self, accounts, alice):
        assert await accounts.get_profile("alice") is None
        profile = await accounts.update_profile("alice", first_name="Alice", bio="Saving for a house")
        assert profile.first_name == "Alice"
        again = await accounts.update_profile("alice", last_name="Liddell")
        assert again.id == profile.id
        assert again.first_name == "Alice"

    async def test_unknown_profile_field(self, accounts, alice):
        with pytest.raises(ValidationError):
            await accounts.update_profile("alice", password="hunter2")

    async def test_update_email_conflict(self, accounts, alice, bob):
        with pytest.raises(AlreadyExistsError):
            await accounts.update_account("alice", email="bob@example.com")

    async def test_overview(self, accounts, alice):
        overview = await accounts.get_overview("alice")
        assert overview["portfolio_count"] == 1
        assert overview["cash_balance"] == Decimal("1000.00")


# ============================================================
# SESSIONS
# ============================================================

class TestSessions:

    @pytest.fixture
    def sessions(self, session):
        service = SessionService(session)
        service.ttl = timedelta(hours=24)
        service.inactivity = timedelta(hours=2)
        return service

    async def test_create_and_touch(self, sessions, alice):
        user_session = await sessions.create_session("alice", SessionType.MOBILE, ip_address="10.0.0.1", now=NOW)
        assert await sessions.is_valid(user_session.session_token, now=NOW + timedelta(hours=1))
        touched = await sessions.touch(user_session.session_token, now=NOW + timedelta(hours=1))
        assert touched.last_activity_at == NOW + timedelta(hours=1)
        assert alice.last_login_at == NOW

    async def test_idle_session_rejected(self, sessions, alice):
        user_session = await sessions.create_session("alice", now=NOW)
        with pytest.raises(AuthenticationError):
            await sessions.touch(user_session.session_token, now=NOW + timedelta(hours=3))

    async def test_unknown_token_is_invalid(self, sessions, alice):
        assert not await sessions.is_valid("missing-token")

    async def test_suspended_account_cannot_log_in(self, sessions, accounts, alice):
        await accounts.suspend("alice")
        with pytest.raises(AuthenticationError):
            await sessions.create_session("alice", now=NOW)

    async def test_cleanup_expired(self, session, sessions, alice):
        stale = await sessions.create_session("alice", now=NOW)
        fresh = await sessions.create_session("alice", now=NOW + timedelta(hours=5))

        assert await sessions.cleanup_expired(now=NOW + timedelta(hours=6)) == 1
        await session.refresh(stale)
        await session.refresh(fresh)
        assert not stale.active
        assert fresh.active

    async def test_logout_all(self, session, sessions, alice):
        first = await sessions.create_session("alice", now=NOW)
        await sessions.create_session("alice", now=NOW)
        assert await sessions.logout_all("alice") == 2
        await session.refresh(first)
        assert not first.active
        assert await sessions.list_active("alice", now=NOW) == []

    async def test_logout_is_audited(self, session, sessions, alice):
        user_session = await sessions.create_session("alice", now=NOW)
        await sessions.logout(user_session.session_token)
        result = await session.execute(
            select(AuditLog).where(AuditLog.event_type == AuditEventType.LOGOUT)
        )
        assert len(result.scalars().all()) == 1


# ============================================================
# ADMIN BOOTSTRAP
# ============================================================

class TestBootstrapAdmin:

    async def test_noop_without_configured_admin(self, session, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_USERNAME", "")
        assert await bootstrap_admin(session) is None

    async def test_creates_admin(self, session, quotes, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_USERNAME", "root_admin")
        monkeypatch.setattr(settings, "ADMIN_EMAIL", "")
        admin = await bootstrap_admin(session)
        assert admin.is_admin
        assert admin.email == "root_admin@localhost.localdomain"
        assert (await bootstrap_admin(session)).id == admin.id

    async def test_promotes_existing_account(self, session, alice, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_USERNAME", "alice")
        admin = await bootstrap_admin(session)
        assert admin.id == alice.id
        assert admin.is_admin
