from unittest.mock import AsyncMock

import pytest

from smart_notify.features.smart_notifications.jobs import run_profile_refresh
from smart_notify.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_exposes_profile_refresh():
    assert "notification_profile_refresh" in worker.JOB_REGISTRY
    assert "notification_profile_refresh_once" in worker.JOB_REGISTRY


@pytest.mark.asyncio
async def test_database_wrapper_closes_pool_on_failure(monkeypatch):
    events = []

    async def initialize():
        events.append("open")

    async def close():
        events.append("close")

    async def failing_job():
        raise RuntimeError("boom")

    monkeypatch.setattr(worker.db_pool, "initialize", initialize)
    monkeypatch.setattr(worker.db_pool, "close", close)

    with pytest.raises(RuntimeError):
        await worker._with_database(failing_job)()

    assert events == ["open", "close"]


def test_resolve_job_name_from_env(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.setenv("WORKER_JOB", " Notification_Profile_Refresh_Once ")

    assert worker._resolve_job_name() == "notification_profile_refresh_once"


@pytest.mark.asyncio
async def test_profile_refresh_job_delegates(monkeypatch):
    stats = {"users": 2, "updated": 1, "skipped": 1, "failed": 0}
    refresh = AsyncMock(return_value=stats)
    monkeypatch.setattr(
        "smart_notify.features.smart_notifications.jobs.profile_refresh_job"
        ".profile_learning_service.refresh_all_profiles",
        refresh,
    )

    assert await run_profile_refresh() == stats
    refresh.assert_awaited_once_with()
