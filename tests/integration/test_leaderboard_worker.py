"""Leaderboard warm-up worker."""

from __future__ import annotations

import json

from pglms.leaderboard.worker import WorkerSettings, warm_leaderboards


async def test_warms_every_period(db_engine, make_user, fake_redis):
    await make_user()
    await make_user(role="TRAINER")

    counts = await warm_leaderboards({"cache_redis": fake_redis})

    assert counts == {"DAILY": 1, "WEEKLY": 1, "MONTHLY": 1, "YEARLY": 1}
    snapshots = [k for k in fake_redis.store if k.startswith("leaderboard:INDIVIDUAL:*:")]
    assert len(snapshots) == 4
    rows = json.loads(fake_redis.store[snapshots[0]])["rows"]
    assert rows[0]["rank"] == 1


async def test_skips_locked_snapshot(db_engine, make_user, fake_redis):
    await make_user()
    first = await warm_leaderboards({"cache_redis": fake_redis})
    lock_key = next(k for k in fake_redis.store if ":DAILY:" in k) + ":lock"
    await fake_redis.set(lock_key, "1")

    counts = await warm_leaderboards({"cache_redis": fake_redis})

    assert first["DAILY"] == 1
    assert counts["DAILY"] == -1
    assert counts["WEEKLY"] == 1


def test_worker_settings_schedule():
    assert warm_leaderboards in WorkerSettings.functions
    assert len(WorkerSettings.cron_jobs) == 1
