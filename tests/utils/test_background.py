"""Tests for background jobs."""

import asyncio

import pytest

from utils.background import BackgroundJob


def test_job_stores_result():
    async def work():
        await asyncio.sleep(0.01)
        return "done"

    job = BackgroundJob("work").start(work)
    job.join(timeout=5)

    assert job.is_finished
    assert not job.is_running
    assert job.result == "done"
    assert job.error is None
    assert job.finished_at >= job.started_at


def test_job_stores_error_message():
    async def fail():
        raise ValueError("Please approve at least one book idea")

    job = BackgroundJob("fail").start(fail)
    job.join(timeout=5)

    assert job.error == "Please approve at least one book idea"
    assert job.result is None
    assert job.snapshot()["error"] == job.error


def test_job_cannot_start_twice_while_running():
    release = {"go": False}

    async def wait():
        while not release["go"]:
            await asyncio.sleep(0.01)

    job = BackgroundJob("wait").start(wait)
    try:
        with pytest.raises(RuntimeError):
            job.start(wait)
    finally:
        release["go"] = True
        job.join(timeout=5)
    assert job.is_finished


def test_job_can_restart_after_finishing():
    async def value():
        return 1

    job = BackgroundJob("again").start(value)
    job.join(timeout=5)
    job.start(value)
    job.join(timeout=5)
    assert job.result == 1
