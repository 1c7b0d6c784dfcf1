from __future__ import annotations

import schedule

import jobs
from devops.client import Collection


def test_on_change_runs_only_when_collections_change(monkeypatch):
    fingerprints = iter(["a", "a", "b"])
    monkeypatch.setattr(jobs, "config_fingerprint", lambda: next(fingerprints))
    monkeypatch.setattr(jobs, "get_collections", lambda: [Collection("http://x", "A", "t")])
    monkeypatch.setattr(jobs, "_last_fingerprint", None)
    calls = []

    assert jobs.check_config_change(lambda: calls.append(1)) is True
    assert jobs.check_config_change(lambda: calls.append(1)) is False
    assert jobs.check_config_change(lambda: calls.append(1)) is True
    assert len(calls) == 2


def test_no_refresh_without_a_complete_collection(monkeypatch):
    monkeypatch.setattr(jobs, "config_fingerprint", lambda: "empty")
    monkeypatch.setattr(jobs, "get_collections", lambda: [])
    monkeypatch.setattr(jobs, "_last_fingerprint", None)
    calls = []

    jobs.check_config_change(lambda: calls.append(1))

    assert calls == []


def test_schedule_refresh_registers_a_job():
    job = jobs.schedule_refresh(lambda: None, minutes=5)
    try:
        assert job in schedule.get_jobs()
        assert job.interval == 5
    finally:
        schedule.cancel_job(job)
