"""Tests for PollingWorker and UserSyncJob.

Covers:
- Cycles repeat after the interval
- A failing cycle does not stop the loop
- Stop signal during the wait ends the loop promptly
- Stop signal during a cycle lets the cycle finish
- Task cancellation unwinds immediately
- UserSyncJob processes each user once and tags weather readings
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx
import pytest

from modulith.clients.user_api import UserApiClient
from modulith.clients.weather import WeatherClient
from modulith.core.errors import ServiceCallError
from modulith.resilience.circuit_breaker import BreakerConfig, CircuitBreaker
from modulith.resilience.policy import ResilientCallPolicy
from modulith.resilience.retry import RetryPlan
from modulith.worker import PollingWorker, UserSyncJob, WorkerState, WorkerTick


class TestPollingWorkerLoop:
    async def test_runs_cycles_until_stopped(self):
        stop = asyncio.Event()
        ticks: list[WorkerTick] = []

        async def work(tick: WorkerTick) -> None:
            ticks.append(tick)
            if len(ticks) == 3:
                stop.set()

        worker = PollingWorker(work, interval=0.01)
        await asyncio.wait_for(worker.run(stop), timeout=2.0)

        assert [t.number for t in ticks] == [1, 2, 3]
        assert worker.cycles_run == 3
        assert worker.state == WorkerState.STOPPED

    async def test_failed_cycle_does_not_stop_loop(self, caplog):
        stop = asyncio.Event()
        calls = 0

        async def work(tick: WorkerTick) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            stop.set()

        worker = PollingWorker(work, interval=0.01)
        with caplog.at_level(logging.ERROR, logger="modulith.worker"):
            await asyncio.wait_for(worker.run(stop), timeout=2.0)

        assert calls == 2
        assert worker.cycles_failed == 1
        assert "cycle 1 failed" in caplog.text

    async def test_stop_during_wait_ends_loop_promptly(self):
        stop = asyncio.Event()
        calls = 0

        async def work(tick: WorkerTick) -> None:
            nonlocal calls
            calls += 1

        worker = PollingWorker(work, interval=60.0)
        task = asyncio.create_task(worker.run(stop))
        await asyncio.sleep(0.05)
        assert worker.state == WorkerState.WAITING

        stop.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert calls == 1
        assert worker.state == WorkerState.STOPPED

    async def test_stop_during_cycle_lets_cycle_finish(self):
        stop = asyncio.Event()
        finished: list[int] = []

        async def work(tick: WorkerTick) -> None:
            stop.set()
            await asyncio.sleep(0.02)
            finished.append(tick.number)
            assert tick.stop_requested

        worker = PollingWorker(work, interval=60.0)
        await asyncio.wait_for(worker.run(stop), timeout=1.0)
        assert finished == [1]

    async def test_pre_set_stop_runs_no_cycle(self):
        stop = asyncio.Event()
        stop.set()
        calls = 0

        async def work(tick: WorkerTick) -> None:
            nonlocal calls
            calls += 1

        await PollingWorker(work, interval=0.01).run(stop)
        assert calls == 0

    async def test_cancellation_unwinds_in_flight_cycle(self):
        started = asyncio.Event()

        async def work(tick: WorkerTick) -> None:
            started.set()
            await asyncio.sleep(60.0)

        worker = PollingWorker(work, interval=60.0)
        task = asyncio.create_task(worker.run(asyncio.Event()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert worker.state == WorkerState.STOPPED
        assert worker.cycles_failed == 0

    def test_rejects_negative_interval(self):
        async def work(tick: WorkerTick) -> None:
            return None

        with pytest.raises(ValueError):
            PollingWorker(work, interval=-1.0)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# UserSyncJob
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _policy(name: str) -> ResilientCallPolicy:
    return ResilientCallPolicy(
        name,
        timeout=5.0,
        retry_plan=RetryPlan(max_attempts=1),
        breaker=CircuitBreaker(name, BreakerConfig(minimum_throughput=100)),
    )


@pytest.fixture
def weather_client(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        city = request.url.params["city"]
        if city == "Offline":
            return httpx.Response(503)
        return httpx.Response(
            200,
            json={"location": city, "temperature": 20.0, "description": "Clear", "humidity": 50, "pressure": 1010},
        )

    return WeatherClient("http://testserver", _policy("weather-feed"), client=mock_http(handler))


def _users_client(mock_http, handler) -> UserApiClient:
    return UserApiClient("http://testserver", _policy("user-service"), client=mock_http(handler))


def _tick() -> WorkerTick:
    return WorkerTick(1, datetime.now(timezone.utc), asyncio.Event())


class TestUserSyncJob:
    async def test_processes_each_user_once_and_logs_weather(self, mock_http, weather_client, caplog):
        def users_handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    {"id": 1, "name": "John Doe", "email": "john@example.com"},
                    {"id": 2, "name": "Jane Smith", "email": "jane@example.com"},
                ],
            )

        job = UserSyncJob(
            _users_client(mock_http, users_handler),
            weather_client,
            ["Oslo", "Offline"],
            process_delay=0,
        )
        with caplog.at_level(logging.INFO, logger="modulith.worker"):
            await job(_tick())

        assert job.processed == [1, 2]
        assert "Weather for Oslo" in caplog.text
        assert "Weather for Offline" in caplog.text
        assert "[synthetic]" in caplog.text

    async def test_user_service_failure_fails_the_cycle(self, mock_http, weather_client):
        def users_handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        job = UserSyncJob(_users_client(mock_http, users_handler), weather_client, ["Oslo"], process_delay=0)
        with pytest.raises(ServiceCallError):
            await job(_tick())
        assert job.processed == []

    async def test_worker_survives_user_service_outage(self, mock_http, weather_client):
        responses = iter([httpx.Response(500), httpx.Response(200, json=[{"id": 7, "name": "A", "email": "a@b.c"}])])
        stop = asyncio.Event()

        def users_handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        job = UserSyncJob(_users_client(mock_http, users_handler), weather_client, process_delay=0)

        async def work(tick: WorkerTick) -> None:
            try:
                await job(tick)
            finally:
                if tick.number == 2:
                    stop.set()

        worker = PollingWorker(work, interval=0.01)
        await asyncio.wait_for(worker.run(stop), timeout=2.0)
        assert worker.cycles_failed == 1
        assert job.processed == [7]
