from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from microinvest.core.exceptions import NotFoundError, ValidationError
from microinvest.models.enums import (
    AuditEventType,
    ContentType,
    DifficultyLevel,
    OrderSide,
    ProgressStatus,
)
from microinvest.services.achievement_service import RULES, AchievementService
from microinvest.services.audit_service import AuditService
from microinvest.services.learning_service import LearningService
from microinvest.services.order_service import OrderService
from microinvest.services.portfolio_service import PortfolioService


@pytest.fixture
def learning(session):
    return LearningService(session)


@pytest.fixture
async def lesson(learning):
    return await learning.create_content(
        "What is a stock?",
        description="Ownership basics",
        category="basics",
        difficulty=DifficultyLevel.BEGINNER,
        tags="stocks,equity",
    )


class TestContentCatalogue:

    async def test_create_requires_title(self, learning):
        with pytest.raises(ValidationError):
            await learning.create_content("  ")

    async def test_unknown_field_rejected(self, learning):
        with pytest.raises(ValidationError):
            await learning.create_content("Bonds", price=10)

    async def test_filters_and_search(self, learning, lesson):
        await learning.create_content("Options primer", category="derivatives",
                                      difficulty=DifficultyLevel.ADVANCED,
                                      content_type=ContentType.VIDEO, featured=True)

        featured = await learning.list_content(featured_only=True)
        assert [c.title for c in featured] == ["Options primer"]
        assert [c.title for c in await learning.list_content(category="basics")] == ["What is a stock?"]
        assert [c.title for c in await learning.list_content(search="equity")] == ["What is a stock?"]
        videos = await learning.list_content(content_type=ContentType.VIDEO)
        assert len(videos) == 1

    async def test_views_drive_popularity(self, learning, lesson):
        other = await learning.create_content("Diversification")
        for _ in range(3):
            await learning.get_content(other.id, count_view=True)
        await learning.get_content(lesson.id, count_view=True)

        popular = await learning.get_popular(limit=2)
        assert [c.id for c in popular] == [other.id, lesson.id]
        assert popular[0].view_count == 3

    async def test_deleted_content_is_hidden(self, learning, lesson):
        await learning.delete_content(lesson.id)
        with pytest.raises(NotFoundError):
            await learning.get_content(lesson.id)
        assert await learning.list_content() == []

    async def test_update(self, learning, lesson):
        updated = await learning.update_content(lesson.id, title="Stocks 101", duration_minutes=5)
        assert updated.title == "Stocks 101"
        assert updated.duration_minutes == 5


class TestProgress:

    async def test_start_update_complete(self, learning, lesson, alice):
        now = datetime(2026, 5, 1, 12, 0)
        progress = await learning.start_content("alice", lesson.id, now=now)
        assert progress.status is ProgressStatus.IN_PROGRESS
        assert progress.started_at == now

        progress = await learning.update_progress("alice", lesson.id, 60, now=now + timedelta(minutes=5))
        assert progress.completion_percentage == 60
        assert progress.started_at == now

        progress = await learning.update_progress("alice", lesson.id, 100, now=now + timedelta(minutes=9))
        assert progress.status is ProgressStatus.COMPLETED
        assert progress.finished_at == now + timedelta(minutes=9)

    @pytest.mark.parametrize("percentage", [-1, 101])
    async def test_percentage_bounds(self, learning, lesson, alice, percentage):
        with pytest.raises(ValidationError):
            await learning.update_progress("alice", lesson.id, percentage)

    async def test_rating(self, learning, lesson, alice):
        with pytest.raises(ValidationError):
            await learning.rate_content("alice", lesson.id, 6)
        await learning.complete_content("alice", lesson.id)
        await learning.rate_content("alice", lesson.id, 4)

        stats = await learning.get_stats("alice")
        assert stats["completed"] == 1
        assert stats["average_rating"] == 4.0

    async def test_list_progress_by_status(self, learning, lesson, alice):
        other = await learning.create_content("Index funds")
        await learning.start_content("alice", lesson.id)
        await learning.complete_content("alice", other.id)

        in_progress = await learning.list_progress("alice", ProgressStatus.IN_PROGRESS)
        assert [p.content_id for p in in_progress] == [lesson.id]


class TestAchievements:

    async def test_quick_learner_after_ten_modules(self, session, learning, alice):
        for i in range(10):
            content = await learning.create_content(f"Module {i}")
            await learning.complete_content("alice", content.id)

        names = [a.name for a in await AchievementService(session).list_achievements("alice")]
        assert names == ["Quick Learner"]

    async def test_awards_are_idempotent(self, session, quotes, fees, portfolio):
        await OrderService(session, quotes=quotes, fees=fees).place_order(
            "alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("1")
        )
        achievements = AchievementService(session)
        assert await achievements.check_all("alice") == []
        stats = await achievements.get_user_stats("alice")
        assert stats["total_achievements"] == 1
        assert stats["total_points"] == 10
        assert stats["available"] == len(RULES)

    async def test_portfolio_value_rule(self, session, fees, portfolio):
        await PortfolioService(session, fees=fees).deposit(portfolio.id, "alice", Decimal("49000"))
        names = [a.name for a in await AchievementService(session).list_achievements("alice")]
        assert names == ["Big Saver"]


class TestAuditTrail:

    async def test_user_activity_and_failures(self, session, alice):
        audit = AuditService(session)
        audit.record(AuditEventType.LOGIN, "Login failed", user_id=alice.id, success=False)
        await session.commit()

        activity = await audit.get_user_activity("alice")
        assert activity[0].action == "Login failed"
        failures = await audit.get_failed_operations(hours=1)
        assert [f.action for f in failures] == ["Login failed"]
        security = await audit.get_security_events(hours=1)
        assert all(e.category.value in ("SECURITY", "AUTHENTICATION") for e in security)
