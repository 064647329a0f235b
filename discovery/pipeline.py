"""Discovery pipeline.

Sequences one full scan: capability check, topology, ARP harvest, ping
sweep, local machine injection, hostname resolution, dedup and vendor
classification. Every stage reports a ScanProgress with a fixed
percentage so callers can draw a stable progress bar.
"""
import time
from typing import Callable, List, Optional

from config import get_logger
from config.exceptions import (
    NetworkNotAvailableError,
    PrivilegeRequiredError,
    ScanCancelledError,
    ScanError,
)
from config.logging_config import log_exception
from discovery.arp import read_arp_table
from discovery.cancellation import CancelFlag, get_cancel_flag
from discovery.capabilities import CapabilityDetector
from discovery.merge import dedup_by_ip
from discovery.models import (
    Device,
    NetworkInfo,
    ScanCapabilities,
    ScanMode,
    ScanProgress,
    ScanResult,
    ScanStage,
)
from discovery.platforms import NetworkInspector, get_inspector
from discovery.resolver import HostnameResolver
from discovery.sweep import ProbeSweeper
from discovery.topology import TopologyDetector
from discovery.vendor import OUIDatabase, enrich_devices

logger = get_logger(__name__)

ProgressCallback = Callable[[ScanProgress], None]


class DiscoveryPipeline:
    """One discovery scan from capability check to classified device list.

    Example:
        >>> result = await DiscoveryPipeline().run(lambda p: print(p.message))
        >>> for device in result.devices:
        ...     print(device.ip, device.display_name)
    """

    def __init__(
        self,
        inspector: Optional[NetworkInspector] = None,
        cancel_flag: Optional[CancelFlag] = None,
        oui_db: Optional[OUIDatabase] = None,
    ):
        self.inspector = inspector or get_inspector()
        self.cancel_flag = cancel_flag or get_cancel_flag()
        self.oui_db = oui_db
        self.capability_detector = CapabilityDetector(self.inspector)
        self.topology_detector = TopologyDetector(self.inspector)
        self.sweeper = ProbeSweeper(self.inspector, self.cancel_flag)
        self.resolver = HostnameResolver(self.inspector, self.cancel_flag)
        self._callback: Optional[ProgressCallback] = None
        self._started = 0.0

    def _elapsed(self) -> float:
        return time.monotonic() - self._started

    def _emit(self, stage: ScanStage, message: str, percent: Optional[int] = None,
              devices_found: Optional[int] = None) -> None:
        logger.debug(f"[{stage.value}] {message}")
        if self._callback is None:
            return
        progress = ScanProgress(stage=stage, message=message, percent=percent,
                                devices_found=devices_found, elapsed_secs=self._elapsed())
        try:
            self._callback(progress)
        except Exception as e:
            log_exception(logger, "Progress callback raised", e)

    async def run(self, progress_callback: Optional[ProgressCallback] = None) -> ScanResult:
        """Run a full scan.

        Raises:
            PrivilegeRequiredError: Neither ping nor the ARP table is usable.
            NetworkNotAvailableError: The local network could not be detected.
            ScanCancelledError: Cancelled before any device was collected.
        """
        self._callback = progress_callback
        self._started = time.monotonic()
        self.cancel_flag.clear()

        caps = await self._check_capabilities()
        network_info = await self._detect_network()

        if self.cancel_flag.is_set():
            self._emit(ScanStage.FAILED, "Scan cancelled")
            raise ScanCancelledError("Scan cancelled before reading the ARP table")

        arp_devices = await self._read_arp(caps)
        devices, cancelled = await self._sweep(caps, network_info, arp_devices)
        await self._ensure_local_machine(devices, network_info)

        if self.cancel_flag.is_set():
            cancelled = True
        await self._resolve_hostnames(devices)

        devices = dedup_by_ip(devices)
        enrich_devices(devices, self.oui_db)

        elapsed = self._elapsed()
        if cancelled:
            message = f"Scan cancelled: {len(devices)} devices found in {elapsed:.1f}s"
        else:
            message = f"Scan complete: {len(devices)} devices found in {elapsed:.1f}s"
        logger.info(message)
        self._emit(ScanStage.COMPLETE, message, 100, len(devices))

        return ScanResult(devices=devices, network_info=network_info,
                          capabilities=caps, cancelled=cancelled)

    async def _check_capabilities(self) -> ScanCapabilities:
        self._emit(ScanStage.STARTING, "Checking scan capabilities...", 2)
        caps = await self.capability_detector.detect()
        if caps.mode == ScanMode.LIMITED and caps.warning:
            self._emit(ScanStage.STARTING,
                       f"Running with limited capabilities: {caps.warning}", 3)

        if not caps.can_ping and not caps.can_read_arp:
            message = "Cannot ping hosts or read the ARP table"
            self._emit(ScanStage.PRIVILEGE_REQUIRED, message)
            raise PrivilegeRequiredError(
                message,
                instructions=caps.elevation_instructions
                or self.inspector.elevation_instructions(),
                details={"platform": self.inspector.name},
            )
        return caps

    async def _detect_network(self) -> NetworkInfo:
        self._emit(ScanStage.DETECTING_NETWORK, "Detecting network configuration...", 5)
        try:
            return await self.topology_detector.detect()
        except NetworkNotAvailableError as e:
            self._emit(ScanStage.FAILED, f"Network detection failed: {e.message}")
            raise

    async def _read_arp(self, caps: ScanCapabilities) -> List[Device]:
        self._emit(ScanStage.READING_ARP, "Reading known devices from ARP table...", 10)
        if not caps.can_read_arp:
            arp_devices: List[Device] = []
        else:
            arp_devices = await read_arp_table(self.inspector)
        self._emit(ScanStage.READING_ARP, f"Found {len(arp_devices)} devices in ARP cache",
                   15, len(arp_devices))
        return arp_devices

    async def _sweep(self, caps: ScanCapabilities, network_info: NetworkInfo,
                     arp_devices: List[Device]):
        if caps.mode == ScanMode.LIMITED and arp_devices:
            self._emit(
                ScanStage.PING_SWEEP,
                f"Limited mode: skipping ping sweep, using {len(arp_devices)} "
                f"devices from ARP table",
                50, len(arp_devices),
            )
            return list(arp_devices), False
        if not caps.can_ping:
            self._emit(
                ScanStage.PING_SWEEP,
                "Ping sweep skipped (requires elevated privileges). Using ARP table only.",
                50, len(arp_devices),
            )
            return list(arp_devices), False

        self._emit(ScanStage.PING_SWEEP, "Discovering devices on network (ping sweep)...", 20)
        try:
            sweep = await self.sweeper.sweep(network_info.subnet)
        except ScanError as e:
            logger.warning(f"Ping sweep failed, continuing with ARP results: {e}")
            self._emit(ScanStage.PING_SWEEP, f"Ping sweep had issues: {e}",
                       50, len(arp_devices))
            return list(arp_devices), False

        devices = dedup_by_ip(list(arp_devices) + sweep.devices)
        if sweep.timed_out:
            self._emit(ScanStage.PING_SWEEP, f"Ping sweep had issues: {sweep.timeout_error}",
                       50, len(devices))
        else:
            self._emit(ScanStage.PING_SWEEP, f"Discovered {len(devices)} total devices",
                       50, len(devices))
        return devices, sweep.cancelled

    async def _ensure_local_machine(self, devices: List[Device],
                                    network_info: NetworkInfo) -> None:
        local_ip = network_info.local_ip
        if not local_ip:
            return
        hostname = await self.inspector.local_hostname()
        for device in devices:
            if device.ip == local_ip:
                if device.hostname is None:
                    device.hostname = hostname
                if device.response_time_ms is None:
                    device.response_time_ms = 0.0
                return
        devices.append(Device(ip=local_ip, response_time_ms=0.0, hostname=hostname))

    async def _resolve_hostnames(self, devices: List[Device]) -> None:
        if not devices:
            return
        total = len(devices)
        self._emit(ScanStage.RESOLVING_HOSTNAMES,
                   f"Resolving hostnames for {total} devices (may take a moment)...",
                   55, total)
        started = time.monotonic()
        resolved = await self.resolver.resolve(devices)
        self._emit(
            ScanStage.RESOLVING_HOSTNAMES,
            f"Resolved {resolved}/{total} hostnames in {time.monotonic() - started:.1f}s",
            95, total,
        )


async def run_discovery(progress_callback: Optional[ProgressCallback] = None,
                        inspector: Optional[NetworkInspector] = None) -> ScanResult:
    """Run one discovery scan with the default collaborators."""
    return await DiscoveryPipeline(inspector).run(progress_callback)
