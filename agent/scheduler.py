"""Background scheduler for discovery scans and health checks.

The scheduler is the only owner of SchedulerState. Scans and health
checks get copies of the known devices and hand their results back to
the scheduler, which merges, persists and uploads them.

Two loops run independently:

    scan loop    every scan_interval_seconds    -> run_scan_and_upload()
    health loop  every health_check_interval_seconds -> run_health_check_and_upload()

Each loop wakes at least every LOOP_POLL_SECONDS and re-reads its
interval, so a changed interval takes effect without a restart. The new
period counts from the moment the setter ran, not from when the loop
noticed.
"""
import asyncio
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, List, Optional

from config import INTERVALS, get_logger
from config.exceptions import ConfigurationError, StorageError, SurveyError, UploadError
from config.logging_config import log_exception
from discovery.merge import merge_preserving_health
from discovery.models import (
    Device,
    DeviceHealthResult,
    ScanProgress,
    ScanResult,
    ScanStage,
    SchedulerState,
)
from discovery.pipeline import DiscoveryPipeline
from agent.health import run_health_check
from agent.uploader import NullUploader, Uploader
from storage.state_store import StateStore

logger = get_logger(__name__)

HealthCheckFn = Callable[[List[Device]], Awaitable[List[DeviceHealthResult]]]


@dataclass
class ScanOutcome:
    result: ScanResult
    synced: bool


@dataclass
class HealthOutcome:
    results: List[DeviceHealthResult]
    synced: bool


def _validate_interval(name: str, seconds: int) -> int:
    if isinstance(seconds, bool) or not isinstance(seconds, int):
        raise ConfigurationError(f"{name} must be an integer number of seconds",
                                 {"value": seconds})
    if not INTERVALS.MIN_INTERVAL_SECONDS <= seconds <= INTERVALS.MAX_INTERVAL_SECONDS:
        raise ConfigurationError(
            f"{name} must be between {INTERVALS.MIN_INTERVAL_SECONDS} and "
            f"{INTERVALS.MAX_INTERVAL_SECONDS} seconds",
            {"value": seconds},
        )
    return seconds


class Scheduler:
    """Runs discovery scans and health checks on independent cadences.

    Example:
        >>> scheduler = Scheduler(StateStore(), JsonFileUploader(Path("/tmp/out")))
        >>> await scheduler.start()
        >>> await scheduler.wait()
    """

    def __init__(
        self,
        store: Optional[StateStore] = None,
        uploader: Optional[Uploader] = None,
        pipeline: Optional[DiscoveryPipeline] = None,
        health_check: Optional[HealthCheckFn] = None,
        progress_callback: Optional[Callable[[ScanProgress], None]] = None,
        poll_seconds: float = INTERVALS.LOOP_POLL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store or StateStore()
        self.uploader = uploader or NullUploader()
        self.pipeline = pipeline or DiscoveryPipeline()
        self.health_check = health_check or run_health_check
        self.progress_callback = progress_callback
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._sleep = sleep

        self._state = SchedulerState()
        self._state_loaded = False
        self._lock = asyncio.Lock()
        self._scanning = False
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._stopped = asyncio.Event()
        # Loop name -> clock time of the last interval change
        self._interval_changed_at: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    async def load_state(self) -> None:
        async with self._lock:
            self._state = self.store.load_state()
            self._state_loaded = True
        logger.info(
            f"Loaded {len(self._state.known_devices)} known devices "
            f"(scan every {self._state.scan_interval_seconds}s, "
            f"health check every {self._state.health_check_interval_seconds}s)"
        )

    def _persist(self) -> None:
        """Save the current state. Caller holds the lock."""
        try:
            self.store.save_state(self._state)
        except StorageError as e:
            log_exception(logger, "Could not persist agent state", e)

    def get_known_devices(self) -> List[Device]:
        return [replace(d) for d in self._state.known_devices]

    def get_last_scan_time(self) -> Optional[float]:
        return self._state.last_scan_time

    def get_scan_interval(self) -> int:
        return self._state.scan_interval_seconds

    def get_health_check_interval(self) -> int:
        return self._state.health_check_interval_seconds

    def is_scanning(self) -> bool:
        return self._scanning

    def is_running(self) -> bool:
        return self._running

    async def set_scan_interval(self, seconds: int) -> None:
        """Change the scan cadence and persist it.

        Raises:
            ConfigurationError: If the value is outside the allowed range.
        """
        seconds = _validate_interval("Scan interval", seconds)
        async with self._lock:
            self._state.scan_interval_seconds = seconds
            self._interval_changed_at["scan"] = self._clock()
            self._persist()
        logger.info(f"Scan interval set to {seconds}s")

    async def set_health_check_interval(self, seconds: int) -> None:
        """Change the health-check cadence and persist it.

        Raises:
            ConfigurationError: If the value is outside the allowed range.
        """
        seconds = _validate_interval("Health check interval", seconds)
        async with self._lock:
            self._state.health_check_interval_seconds = seconds
            self._interval_changed_at["health check"] = self._clock()
            self._persist()
        logger.info(f"Health check interval set to {seconds}s")

    # ------------------------------------------------------------------
    # Work units
    # ------------------------------------------------------------------

    def _emit(self, stage: ScanStage, message: str) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(ScanProgress(stage=stage, message=message))
        except Exception as e:
            log_exception(logger, "Progress callback raised", e)

    async def run_scan_and_upload(self) -> Optional[ScanOutcome]:
        """Run one discovery scan, merge it into the known devices and upload it.

        Returns:
            The outcome, or None if another scan was already running.

        Raises:
            ScanError: If the scan itself failed.
        """
        if self._scanning:
            logger.info("Scan already in progress, skipping")
            return None
        self._scanning = True
        try:
            result = await self.pipeline.run(self.progress_callback)

            if result.cancelled:
                logger.info("Scan was cancelled, known devices left unchanged")
                return ScanOutcome(result=result, synced=False)

            async with self._lock:
                self._state.known_devices = merge_preserving_health(
                    result.devices, self._state.known_devices
                )
                self._state.last_scan_time = time.time()
                self._persist()

            self._emit(ScanStage.UPLOADING, f"Uploading {len(result.devices)} devices...")
            synced = await self._upload(self.uploader.upload_scan, result, "scan")
            return ScanOutcome(result=result, synced=synced)
        finally:
            self._scanning = False

    async def run_health_check_and_upload(self) -> HealthOutcome:
        """Re-check the known devices, persist their timings and upload the results."""
        async with self._lock:
            devices = [replace(d) for d in self._state.known_devices]

        results = await self.health_check(devices)

        async with self._lock:
            # A scan may have replaced the device list while we were checking
            by_ip = {r.ip: r for r in results}
            for device in self._state.known_devices:
                checked = by_ip.get(device.ip)
                if checked is not None:
                    device.response_time_ms = checked.response_time_ms
            self._persist()

        self._emit(ScanStage.UPLOADING, f"Uploading {len(results)} health results...")
        synced = await self._upload(self.uploader.upload_health, results, "health")
        return HealthOutcome(results=results, synced=synced)

    async def _upload(self, upload, payload, kind: str) -> bool:
        try:
            await asyncio.to_thread(upload, payload)
        except UploadError as e:
            logger.warning(f"Upload of {kind} results failed: {e}")
            return False
        except Exception as e:
            # Uploaders are pluggable and may raise anything
            log_exception(logger, f"Upload of {kind} results failed", e)
            return False
        return True

    async def _tick(self, name: str, work: Callable[[], Awaitable]) -> None:
        try:
            await work()
        except SurveyError as e:
            log_exception(logger, f"Scheduled {name} failed", e)
        except Exception as e:
            log_exception(logger, f"Unexpected error in scheduled {name}", e)

    def trigger_immediate_scan(self) -> bool:
        """Start a scan now in the background.

        Returns:
            False if a scan is already running.
        """
        if self._scanning:
            logger.info("Scan already in progress, not triggering another")
            return False
        self._tasks.append(asyncio.create_task(self._tick("scan", self.run_scan_and_upload)))
        return True

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _run_loop(self, name: str, get_interval: Callable[[], int],
                        work: Callable[[], Awaitable]) -> None:
        armed = get_interval()
        deadline = self._clock() + armed
        logger.debug(f"{name} loop armed for {armed}s")

        while self._running:
            await self._sleep(max(0.0, min(self.poll_seconds, deadline - self._clock())))
            if not self._running:
                break

            interval = get_interval()
            now = self._clock()
            if interval != armed:
                # The new period runs from the setter call, not from this poll
                logger.info(f"{name} interval changed {armed}s -> {interval}s, re-arming")
                armed = interval
                deadline = self._interval_changed_at.get(name, now) + armed
                if now < deadline:
                    continue

            if now >= deadline:
                await self._tick(name, work)
                deadline = self._clock() + armed

    async def start(self) -> None:
        """Load state, run one scan and one health check, then start both loops."""
        if self._running:
            return
        if not self._state_loaded:
            await self.load_state()

        self._running = True
        logger.info("Scheduler starting: initial scan and health check")
        await self._tick("scan", self.run_scan_and_upload)
        await self._tick("health check", self.run_health_check_and_upload)

        self._tasks.append(asyncio.create_task(
            self._run_loop("scan", self.get_scan_interval, self.run_scan_and_upload)))
        self._tasks.append(asyncio.create_task(
            self._run_loop("health check", self.get_health_check_interval,
                           self.run_health_check_and_upload)))

    async def wait(self) -> None:
        """Block until ``stop()`` is called."""
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop both loops and any background scan."""
        if not self._running and not self._tasks:
            return
        self._running = False
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._stopped.set()
        logger.info("Scheduler stopped")
