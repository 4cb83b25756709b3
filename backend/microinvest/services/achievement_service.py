"""
Achievement rules and awards.

Rules are evaluated after trades, balance changes and learning
completions. Awarding is idempotent per (user, name, type).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.metrics import metrics
from microinvest.models.achievement import Achievement
from microinvest.models.enums import (
    AchievementTier,
    AchievementType,
    ProgressStatus,
    TransactionStatus,
    TransactionType,
)
from microinvest.models.learning import UserProgress
from microinvest.models.portfolio import Portfolio
from microinvest.models.transaction import Transaction
from microinvest.models.user import UserAccount
from microinvest.services.common import get_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementRule:
    name: str
    description: str
    achievement_type: AchievementType
    tier: AchievementTier
    points: int
    threshold: Decimal
    metric: str  # "trades", "portfolio_value" or "completed_modules"


RULES: List[AchievementRule] = [
    AchievementRule(
        name="First Trade",
        description="Completed your first trade",
        achievement_type=AchievementType.TRADING,
        tier=AchievementTier.BRONZE,
        points=10,
        threshold=Decimal("1"),
        metric="trades",
    ),
    AchievementRule(
        name="Active Trader",
        description="Completed 10 trades",
        achievement_type=AchievementType.TRADING,
        tier=AchievementTier.SILVER,
        points=50,
        threshold=Decimal("10"),
        metric="trades",
    ),
    AchievementRule(
        name="Big Saver",
        description="Grew your portfolio value to 50,000",
        achievement_type=AchievementType.PORTFOLIO_OVER_5000,
        tier=AchievementTier.GOLD,
        points=100,
        threshold=Decimal("50000"),
        metric="portfolio_value",
    ),
    AchievementRule(
        name="Quick Learner",
        description="Completed 10 learning modules",
        achievement_type=AchievementType.LEARNING,
        tier=AchievementTier.BRONZE,
        points=25,
        threshold=Decimal("10"),
        metric="completed_modules",
    ),
]


class AchievementService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _trade_count(self, user: UserAccount) -> int:
        result = await self.session.execute(
            select(func.count(Transaction.id))
            .join(Portfolio, Portfolio.id == Transaction.portfolio_id)
            .where(
                Portfolio.user_id == user.id,
                Transaction.transaction_type.in_([TransactionType.BUY, TransactionType.SELL]),
                Transaction.status.in_([TransactionStatus.PENDING, TransactionStatus.COMPLETED]),
            )
        )
        return result.scalar_one()

    async def _portfolio_value(self, user: UserAccount) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Portfolio.total_value), 0))
            .where(Portfolio.user_id == user.id, Portfolio.active.is_(True))
        )
        return Decimal(str(result.scalar_one()))

    async def _completed_modules(self, user: UserAccount) -> int:
        result = await self.session.execute(
            select(func.count(UserProgress.id)).where(
                UserProgress.user_id == user.id,
                UserProgress.status == ProgressStatus.COMPLETED,
            )
        )
        return result.scalar_one()

    async def _metric_value(self, user: UserAccount, metric: str) -> Decimal:
        if metric == "trades":
            return Decimal(await self._trade_count(user))
        if metric == "portfolio_value":
            return await self._portfolio_value(user)
        if metric == "completed_modules":
            return Decimal(await self._completed_modules(user))
        raise ValueError(f"Unknown achievement metric: {metric}")

    async def has_achievement(self, user: UserAccount, rule: AchievementRule) -> bool:
        result = await self.session.execute(
            select(Achievement.id).where(
                Achievement.user_id == user.id,
                Achievement.name == rule.name,
                Achievement.achievement_type == rule.achievement_type,
            )
        )
        return result.scalar_one_or_none() is not None

    async def award(self, user: UserAccount, rule: AchievementRule,
                    now: Optional[datetime] = None) -> Optional[Achievement]:
        if await self.has_achievement(user, rule):
            return None
        achievement = Achievement(
            user_id=user.id,
            name=rule.name,
            description=rule.description,
            achievement_type=rule.achievement_type,
            tier=rule.tier,
            points=rule.points,
            threshold=rule.threshold,
            earned_at=now or datetime.utcnow(),
        )
        self.session.add(achievement)
        await self.session.flush()
        logger.info(f"Awarded '{rule.name}' to {user.username}")
        metrics.achievement_awarded(user.username, rule.name, rule.points)
        return achievement

    async def evaluate(self, user: UserAccount, metrics_to_check: Optional[List[str]] = None) -> List[Achievement]:
        """Award every rule whose threshold the user now meets. Does not commit."""
        await self.session.flush()
        awarded: List[Achievement] = []
        cache: Dict[str, Decimal] = {}
        for rule in RULES:
            if metrics_to_check is not None and rule.metric not in metrics_to_check:
                continue
            if rule.metric not in cache:
                cache[rule.metric] = await self._metric_value(user, rule.metric)
            if cache[rule.metric] >= rule.threshold:
                achievement = await self.award(user, rule)
                if achievement is not None:
                    awarded.append(achievement)
        return awarded

    async def check_trading_achievements(self, user: UserAccount) -> List[Achievement]:
        return await self.evaluate(user, ["trades", "portfolio_value"])

    async def check_learning_achievements(self, user: UserAccount) -> List[Achievement]:
        return await self.evaluate(user, ["completed_modules"])

    async def check_all(self, username: str) -> List[Achievement]:
        user = await get_user(self.session, username)
        awarded = await self.evaluate(user)
        await self.session.commit()
        return awarded

    async def list_achievements(self, username: str) -> List[Achievement]:
        user = await get_user(self.session, username)
        result = await self.session.execute(
            select(Achievement)
            .where(Achievement.user_id == user.id)
            .order_by(Achievement.earned_at.desc(), Achievement.id.desc())
        )
        return list(result.scalars().all())

    async def get_user_stats(self, username: str) -> Dict[str, Any]:
        achievements = await self.list_achievements(username)
        by_tier: Dict[str, int] = {}
        for achievement in achievements:
            by_tier[achievement.tier.value] = by_tier.get(achievement.tier.value, 0) + 1
        return {
            "username": username,
            "total_achievements": len(achievements),
            "total_points": sum(a.points for a in achievements),
            "by_tier": by_tier,
            "available": len(RULES),
        }
