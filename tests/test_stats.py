"""Tests for the statistics engine."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.core.stats import (
    WINDOW_24H,
    WINDOW_7D,
    StatsEngine,
    UptimeCalculator,
)
from servicarr.server.core.cache import TTLCache
from servicarr.server.db.samples import insert_sample
from servicarr.server.models.monitoring import Heartbeat, StatMinutely

NOW = 1_700_000_040


@pytest.fixture
def engine() -> StatsEngine:
    return StatsEngine(cache_ttl=30)


class TestRingBuffer:
    """Test the in-memory heartbeat history."""

    def test_first_heartbeat_is_important(self):
        calc = UptimeCalculator("plex", TTLCache(30))
        assert calc.add_heartbeat(1, 10, 200, "") is True

    def test_status_change_is_important(self):
        calc = UptimeCalculator("plex", TTLCache(30))
        flags = [calc.add_heartbeat(status, 10, 200, "") for status in (1, 1, 0, 0, 1)]
        assert flags == [True, False, True, False, True]

    def test_capped_at_history_size_newest_first(self):
        calc = UptimeCalculator("plex", TTLCache(30), history_size=100)
        for ping in range(150):
            calc.add_heartbeat(1, ping, 200, "")

        recent = calc.get_recent_heartbeats()
        assert len(recent) == 100
        assert recent[0].ping == 149
        assert recent[-1].ping == 50

    def test_count_limits_snapshot(self):
        calc = UptimeCalculator("plex", TTLCache(30))
        for ping in range(5):
            calc.add_heartbeat(1, ping, 200, "")
        assert [hb.ping for hb in calc.get_recent_heartbeats(2)] == [4, 3]
        assert calc.get_recent_heartbeats(0) == []

    def test_add_invalidates_uptime_cache(self):
        cache = TTLCache(30)
        calc = UptimeCalculator("plex", cache)
        cache.set(calc.cache_key, {86400: 50.0})
        calc.add_heartbeat(1, 10, 200, "")
        assert cache.get(calc.cache_key) is None


class TestUptime:
    """Test uptime and latency queries over persisted samples."""

    @pytest.mark.asyncio
    async def test_no_samples_is_100(self, db_session: AsyncSession, engine: StatsEngine):
        calc = engine.get_calculator("plex")
        assert await calc.get_uptime(db_session, WINDOW_24H, now=NOW) == 100.0

    @pytest.mark.asyncio
    async def test_percentage_of_ok_samples(self, db_session: AsyncSession, engine: StatsEngine):
        for i, ok in enumerate([True, True, True, False]):
            await insert_sample(db_session, NOW - 60 * i, "plex", ok, 200, 20)
        # Outside the 24h window
        await insert_sample(db_session, NOW - 2 * 86400, "plex", False, 0, None)

        calc = engine.get_calculator("plex")
        assert await calc.get_uptime(db_session, WINDOW_24H, now=NOW) == 75.0
        assert await calc.get_uptime(db_session, WINDOW_7D, now=NOW) == 60.0

    @pytest.mark.asyncio
    async def test_uptime_is_cached_until_heartbeat(
        self, db_session: AsyncSession, engine: StatsEngine
    ):
        await insert_sample(db_session, NOW, "plex", True, 200, 20)
        calc = engine.get_calculator("plex")
        assert await calc.get_uptime(db_session, WINDOW_24H, now=NOW) == 100.0

        await insert_sample(db_session, NOW, "plex", False, 0, None)
        assert await calc.get_uptime(db_session, WINDOW_24H, now=NOW) == 100.0

        calc.add_heartbeat(0, None, 0, "")
        assert await calc.get_uptime(db_session, WINDOW_24H, now=NOW) == 50.0

    @pytest.mark.asyncio
    async def test_uptime_within_bounds(self, db_session: AsyncSession, engine: StatsEngine):
        for i in range(10):
            await insert_sample(db_session, NOW - i, "plex", i % 3 == 0, 200, 5)
        uptime = await engine.get_calculator("plex").get_uptime(db_session, WINDOW_24H, now=NOW)
        assert 0.0 <= uptime <= 100.0

    @pytest.mark.asyncio
    async def test_average_latency_ignores_missing(
        self, db_session: AsyncSession, engine: StatsEngine
    ):
        await insert_sample(db_session, NOW, "plex", True, 200, 100)
        await insert_sample(db_session, NOW - 1, "plex", True, 200, 200)
        await insert_sample(db_session, NOW - 2, "plex", False, 0, None)

        calc = engine.get_calculator("plex")
        assert await calc.get_average_latency(db_session, WINDOW_24H, now=NOW) == 150.0
        assert await calc.get_average_latency(db_session, timedelta(0), now=NOW + 10) == 0.0


class TestRecordHeartbeat:
    """Test persisting heartbeats and minutely buckets."""

    @pytest.mark.asyncio
    async def test_persists_heartbeat_and_bucket(
        self, db_session: AsyncSession, engine: StatsEngine
    ):
        assert await engine.record_heartbeat(db_session, "plex", True, 100, 200, "", now=NOW)
        assert not await engine.record_heartbeat(
            db_session, "plex", True, 200, 200, "", now=NOW + 10
        )
        assert await engine.record_heartbeat(
            db_session, "plex", False, None, 0, "refused", now=NOW + 20
        )

        heartbeats = (await db_session.execute(select(Heartbeat))).scalars().all()
        assert [hb.important for hb in heartbeats] == [True, False, True]

        bucket = (await db_session.execute(select(StatMinutely))).scalar_one()
        assert bucket.ts == NOW // 60 * 60
        assert bucket.up == 2
        assert bucket.down == 1
        assert bucket.ping == pytest.approx(150.0)
        assert bucket.ping_min == 100
        assert bucket.ping_max == 200

    @pytest.mark.asyncio
    async def test_checks_without_latency_do_not_dilute_ping(
        self, db_session: AsyncSession, engine: StatsEngine
    ):
        await engine.record_heartbeat(db_session, "plex", False, None, 0, "refused", now=NOW)
        await engine.record_heartbeat(db_session, "plex", True, 100, 200, "", now=NOW + 10)
        await engine.record_heartbeat(db_session, "plex", True, 200, 200, "", now=NOW + 20)

        bucket = (await db_session.execute(select(StatMinutely))).scalar_one()
        assert (bucket.up, bucket.down) == (2, 1)
        assert bucket.ping_count == 2
        assert bucket.ping == pytest.approx(150.0)

    @pytest.mark.asyncio
    async def test_message_is_sanitized(self, db_session: AsyncSession, engine: StatsEngine):
        await engine.record_heartbeat(
            db_session, "plex", False, None, 0, "failed http://plex.local/?token=abc", now=NOW
        )

        heartbeat = (await db_session.execute(select(Heartbeat))).scalar_one()
        assert heartbeat.msg == "failed [url]"
        assert engine.get_recent_heartbeats("plex")[0].msg == "failed [url]"


class TestUptimeStats:
    """Test aggregate stats for a service."""

    @pytest.mark.asyncio
    async def test_stats_and_cache(self, db_session: AsyncSession, engine: StatsEngine):
        await engine.record_heartbeat(db_session, "plex", True, 40, 200, "", now=NOW)
        await insert_sample(db_session, NOW, "plex", True, 200, 40)
        await insert_sample(db_session, NOW - 60, "plex", False, 0, None)

        stats = await engine.get_uptime_stats(db_session, "plex", now=NOW)
        assert stats.uptime_24h == 50.0
        assert stats.uptime_30d == 50.0
        assert stats.avg_latency == 40.0
        assert stats.last_checked is not None
        assert int(stats.last_checked.timestamp()) == NOW

        await insert_sample(db_session, NOW - 120, "plex", True, 200, 10)
        assert await engine.get_uptime_stats(db_session, "plex", now=NOW) is stats

    @pytest.mark.asyncio
    async def test_unknown_service(self, db_session: AsyncSession, engine: StatsEngine):
        stats = await engine.get_uptime_stats(db_session, "nothing", now=NOW)
        assert stats.uptime_24h == 100.0
        assert stats.avg_latency == 0.0
        assert stats.last_checked is None

    def test_remove_calculator(self, engine: StatsEngine):
        engine.get_calculator("plex").add_heartbeat(1, 5, 200, "")
        engine.cache.set("uptime_stats:plex", object())

        engine.remove_calculator("plex")

        assert engine.get_recent_heartbeats("plex") == []
        assert engine.cache.get("uptime_stats:plex") is None
