"""Tests for usage summaries."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.schemas.usage import UsageWindow
from modelpass.services.usage_summary_service import UsageSummaryService, window_start

NOW = datetime(2026, 5, 20, 12, 0, 0, tzinfo=UTC)


def _record(db, resource_id, at, success=True, quantity=100, cost="0.00010"):
    UsageEventRepository(db).create(
        caller_id="u1",
        resource_id=resource_id,
        timestamp=at,
        quantity=quantity,
        latency_ms=50,
        cost=Decimal(cost),
        success=success,
    )


class TestWindowStart:
    @pytest.mark.parametrize(
        ("window", "expected"),
        [
            (UsageWindow.MINUTE, NOW - timedelta(seconds=60)),
            (UsageWindow.TODAY, datetime(2026, 5, 20, tzinfo=UTC)),
            (UsageWindow.WEEK, NOW - timedelta(days=7)),
            (UsageWindow.MONTH, datetime(2026, 5, 1, tzinfo=UTC)),
            (UsageWindow.ALL, None),
        ],
    )
    def test_window_start(self, window, expected):
        assert window_start(window, NOW) == expected


class TestUsageSummaryService:
    def test_month_summary(self, db_session):
        _record(db_session, "m1", NOW - timedelta(hours=1))
        _record(db_session, "m1", NOW - timedelta(days=2), success=False)
        _record(db_session, "m2", NOW - timedelta(minutes=5))
        _record(db_session, "m2", datetime(2026, 4, 30, tzinfo=UTC))

        summary = UsageSummaryService(db_session).get_summary("u1", UsageWindow.MONTH, NOW)

        assert summary.requests == 3
        assert summary.failed_requests == 1
        assert summary.quantity == 300
        assert summary.cost == Decimal("0.00030")
        assert summary.from_datetime == datetime(2026, 5, 1, tzinfo=UTC)
        assert [r.resource_id for r in summary.resources] == ["m1", "m2"]
        assert summary.resources[0].requests == 2

    def test_all_time(self, db_session):
        _record(db_session, "m1", datetime(2025, 1, 1, tzinfo=UTC))
        summary = UsageSummaryService(db_session).get_summary("u1", UsageWindow.ALL, NOW)
        assert summary.requests == 1
        assert summary.from_datetime is None

    def test_excludes_future_events(self, db_session):
        _record(db_session, "m1", NOW + timedelta(minutes=1))
        summary = UsageSummaryService(db_session).get_summary("u1", UsageWindow.MINUTE, NOW)
        assert summary.requests == 0
        assert summary.resources == []
