"""Concurrent reverse hostname resolution.

Each device gets the platform's lookup methods in order (hosts database,
reverse DNS, then mDNS or NetBIOS) and keeps the first plausible answer.
A lookup that fails or times out leaves the device untouched.
"""
import asyncio
from typing import List, Optional

from config import SCAN, get_logger
from discovery.cancellation import CancelFlag, get_cancel_flag
from discovery.models import Device
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)


class HostnameResolver:
    """Fills in ``Device.hostname`` for a list of devices, best-effort."""

    def __init__(
        self,
        inspector: Optional[NetworkInspector] = None,
        cancel_flag: Optional[CancelFlag] = None,
        batch_size: int = SCAN.RESOLVE_BATCH_SIZE,
        timeout: Optional[float] = None,
    ):
        self.inspector = inspector or get_inspector()
        self.cancel_flag = cancel_flag or get_cancel_flag()
        self.batch_size = batch_size
        if timeout is None:
            timeout = (SCAN.RESOLVE_TIMEOUT_WINDOWS_SECONDS if self.inspector.windows
                       else SCAN.RESOLVE_TIMEOUT_SECONDS)
        self.timeout = timeout

    async def lookup(self, ip: str) -> Optional[str]:
        """Try each lookup method in order; first non-empty answer wins."""
        for method in self.inspector.hostname_methods():
            try:
                name = await method(ip)
            except Exception as e:
                logger.debug(f"Hostname method failed for {ip}: {e}")
                continue
            if name:
                return name
        return None

    async def _resolve_one(self, device: Device) -> bool:
        try:
            name = await asyncio.wait_for(self.lookup(device.ip), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Hostname lookup timed out for {device.ip}")
            return False
        if not name:
            return False
        device.hostname = name
        return True

    async def resolve(self, devices: List[Device]) -> int:
        """Resolve hostnames in place.

        Returns:
            Number of devices that received a hostname.
        """
        resolved = 0
        for start in range(0, len(devices), self.batch_size):
            if self.cancel_flag.is_set():
                logger.info(f"Hostname resolution cancelled after {start} devices")
                break
            batch = devices[start:start + self.batch_size]
            results = await asyncio.gather(*(self._resolve_one(d) for d in batch))
            resolved += sum(1 for ok in results if ok)
        return resolved
