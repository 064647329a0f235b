"""Lightweight health check of already known devices.

Unlike a discovery scan, a health check never looks for new hosts: it
only re-checks the devices it is given and updates their timings.
"""
import asyncio
import time
from typing import Callable, List, Optional

from config import INTERVALS, SCAN, get_logger
from config.exceptions import UnreachableError
from config.logging_config import log_exception
from discovery.arp import arp_ip_set
from discovery.models import Device, DeviceHealthResult, ScanProgress, ScanStage
from discovery.platforms import NetworkInspector, get_inspector
from discovery.reachability import check_reachable

logger = get_logger(__name__)


async def _check_device(device: Device, arp_ips, inspector: NetworkInspector) -> DeviceHealthResult:
    try:
        latency = await check_reachable(device.ip, arp_ips, inspector)
    except UnreachableError:
        device.response_time_ms = None
        return DeviceHealthResult(ip=device.ip, reachable=False)
    device.response_time_ms = latency
    return DeviceHealthResult(ip=device.ip, reachable=True, response_time_ms=latency)


async def run_health_check(
    known_devices: List[Device],
    progress_callback: Optional[Callable[[ScanProgress], None]] = None,
    inspector: Optional[NetworkInspector] = None,
    batch_size: int = SCAN.HEALTH_CHECK_BATCH_SIZE,
) -> List[DeviceHealthResult]:
    """Check every known device and update its timing in place.

    One ARP snapshot is taken up front and shared by the whole run.

    Args:
        known_devices: Devices to check; ``response_time_ms`` is rewritten.
        progress_callback: Optional receiver of ScanProgress updates.
        inspector: Platform inspector (defaults to the running platform's).
        batch_size: Devices checked concurrently.

    Returns:
        One DeviceHealthResult per device, in input order.
    """
    inspector = inspector or get_inspector()
    started = time.monotonic()

    def emit(stage: ScanStage, message: str, percent: int) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(ScanProgress(stage=stage, message=message, percent=percent,
                                           devices_found=len(known_devices),
                                           elapsed_secs=time.monotonic() - started))
        except Exception as e:
            log_exception(logger, "Progress callback raised", e)

    emit(ScanStage.STARTING, "Starting health check...", 0)
    if not known_devices:
        emit(ScanStage.COMPLETE, "No known devices to check", 100)
        return []

    arp_ips = await arp_ip_set(inspector, ttl=INTERVALS.ARP_SNAPSHOT_TTL_SECONDS)
    emit(ScanStage.CHECKING_DEVICES, f"Checking {len(known_devices)} devices...", 10)

    results: List[DeviceHealthResult] = []
    for start in range(0, len(known_devices), batch_size):
        batch = known_devices[start:start + batch_size]
        results.extend(await asyncio.gather(
            *(_check_device(device, arp_ips, inspector) for device in batch)
        ))

    reachable = sum(1 for r in results if r.reachable)
    message = (f"Health check complete: {reachable}/{len(results)} devices reachable "
               f"in {time.monotonic() - started:.1f}s")
    logger.info(message)
    emit(ScanStage.COMPLETE, message, 100)
    return results
