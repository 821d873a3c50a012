"""Background polling worker.

``PollingWorker.run()`` is a plain coroutine: it takes a stop event and an
interval, runs one unit of work per tick, and never lets a failed cycle end
the loop.

    STARTING → RUNNING → WAITING → RUNNING → … → STOPPING → STOPPED

Two ways to stop it:

* set the stop event: the current cycle finishes, the next wait returns
  at once and no further cycle starts;
* cancel the task: unwinds immediately from whatever it is awaiting
  (a call deadline, a retry backoff or the wait).

``python -m modulith.worker`` runs ``UserSyncJob`` against the user
service and the weather feed until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from modulith.clients.user_api import UserApiClient, build_user_api_client
from modulith.clients.weather import WeatherClient, build_weather_client
from modulith.core.config import Settings
from modulith.models.schemas import User

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WorkerTick:
    """One scheduled cycle.

    Attributes:
        number:     1-based cycle counter.
        started_at: Wall-clock start of the cycle.
        stop:       The worker's stop signal.
    """

    number: int
    started_at: datetime
    stop: asyncio.Event

    @property
    def stop_requested(self) -> bool:
        return self.stop.is_set()


UnitOfWork = Callable[[WorkerTick], Awaitable[None]]


class PollingWorker:
    """Runs *work* every *interval* seconds with per-cycle fault isolation.

    Args:
        work:     Coroutine function executed once per tick.
        interval: Seconds to wait between the end of one cycle and the next.
        name:     Label used in log lines.
    """

    def __init__(self, work: UnitOfWork, interval: float, *, name: str = "worker") -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self.work = work
        self.interval = interval
        self.name = name
        self.state = WorkerState.STOPPED
        self.cycles_run = 0
        self.cycles_failed = 0

    async def run(self, stop: asyncio.Event) -> None:
        """Loop until *stop* is set or the task is cancelled."""
        self.state = WorkerState.STARTING
        logger.info("%s started, running every %.1f seconds", self.name, self.interval)
        try:
            while not stop.is_set():
                self.state = WorkerState.RUNNING
                await self._run_cycle(stop)

                self.state = WorkerState.WAITING
                if await self._wait(stop):
                    break
        finally:
            self.state = WorkerState.STOPPING
            logger.info("%s is stopping...", self.name)
            self.state = WorkerState.STOPPED
            logger.info(
                "%s stopped after %d cycles (%d failed)",
                self.name,
                self.cycles_run,
                self.cycles_failed,
            )

    async def _run_cycle(self, stop: asyncio.Event) -> None:
        self.cycles_run += 1
        tick = WorkerTick(self.cycles_run, datetime.now(timezone.utc), stop)
        logger.info("%s cycle %d running at %s", self.name, tick.number, tick.started_at.isoformat())
        start = time.monotonic()
        try:
            await self.work(tick)
        except Exception:
            self.cycles_failed += 1
            logger.exception("%s cycle %d failed", self.name, tick.number)
        else:
            logger.info(
                "%s cycle %d completed in %.2fs",
                self.name,
                tick.number,
                time.monotonic() - start,
            )

    async def _wait(self, stop: asyncio.Event) -> bool:
        """Sleep for the interval; return ``True`` if *stop* fired meanwhile."""
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True


class UserSyncJob:
    """Default unit of work: sync users, then sample weather.

    Fetches every user from the user service and processes each one once,
    then fetches weather for *cities*, logging whether each reading is live
    or synthetic.  A user service failure propagates and fails the cycle.
    """

    def __init__(
        self,
        users: UserApiClient,
        weather: WeatherClient,
        cities: Sequence[str] = (),
        *,
        process_delay: float = 0.1,
    ) -> None:
        self._users = users
        self._weather = weather
        self._cities = tuple(cities)
        self._process_delay = process_delay
        self.processed: list[int] = []

    async def __call__(self, tick: WorkerTick) -> None:
        users = await self._users.get_all_users()
        logger.info("Fetched %d users from the user service", len(users))
        for user in users:
            logger.info("Processing user: %d - %s (%s)", user.id, user.name, user.email)
            await self.process_user(user)
        logger.info("Completed processing all users")

        if self._cities:
            readings = await self._weather.get_weather_for_cities(self._cities)
            for reading in readings:
                weather = reading.value
                logger.info(
                    "Weather for %s: %.1f°C, %s%s",
                    weather.location,
                    weather.temperature,
                    weather.description,
                    " [synthetic]" if reading.synthetic else "",
                )

    async def process_user(self, user: User) -> None:
        logger.debug("Processing user business logic for user %d", user.id)
        if self._process_delay:
            await asyncio.sleep(self._process_delay)
        self.processed.append(user.id)


async def run_worker(settings: Settings, stop: asyncio.Event) -> None:
    """Wire the clients from *settings* and poll until *stop* is set."""
    users = build_user_api_client(settings)
    weather = build_weather_client(settings)
    job = UserSyncJob(users, weather, settings.WORKER_CITIES, process_delay=settings.WORKER_PROCESS_DELAY)
    worker = PollingWorker(job, settings.WORKER_INTERVAL_SECONDS, name="user-sync-worker")
    try:
        await worker.run(stop)
    finally:
        await users.close()
        await weather.close()


async def _main(settings: Settings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops lack signal handlers; Ctrl+C still cancels.
            pass
    await run_worker(settings, stop)


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_main(settings))


if __name__ == "__main__":
    main()
