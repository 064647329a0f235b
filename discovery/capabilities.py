"""Scan capability detection.

Privileges can change between scans (an operator may grant CAP_NET_RAW or
restart elevated), so capabilities are probed fresh for every scan.
"""
from typing import Optional

from config import SCAN, get_logger
from discovery.models import ScanCapabilities, ScanMode
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)

LIMITED_WARNING = "Running with limited scan capabilities. Some devices may not be discovered."


class CapabilityDetector:
    """Works out what the current process can do on this host."""

    def __init__(self, inspector: Optional[NetworkInspector] = None):
        self.inspector = inspector or get_inspector()

    async def _can_ping(self) -> bool:
        timeout_s = SCAN.LOOPBACK_PING_TIMEOUT_MS / 1000 if self.inspector.windows else 1
        try:
            return await self.inspector.ping(SCAN.LOOPBACK_ADDRESS, timeout_s) is not None
        except Exception as e:
            logger.debug(f"Loopback ping failed: {e}")
            return False

    async def _is_elevated(self) -> bool:
        try:
            return await self.inspector.is_elevated()
        except Exception as e:
            logger.debug(f"Elevation check failed: {e}")
            return False

    async def detect(self) -> ScanCapabilities:
        """Probe ping, ARP and elevation. Never raises."""
        is_elevated = await self._is_elevated()
        can_ping = await self._can_ping()
        can_read_arp = self.inspector.can_read_arp()

        if can_ping:
            caps = ScanCapabilities(
                mode=ScanMode.FULL,
                can_ping=True,
                can_read_arp=can_read_arp,
                can_resolve_hostnames=True,
                is_elevated=is_elevated,
            )
        else:
            caps = ScanCapabilities(
                mode=ScanMode.LIMITED,
                can_ping=False,
                can_read_arp=can_read_arp,
                can_resolve_hostnames=True,
                is_elevated=is_elevated,
                warning=LIMITED_WARNING,
                elevation_instructions=self.inspector.elevation_instructions(),
            )

        logger.info(
            f"Scan capabilities: mode={caps.mode.value}, ping={caps.can_ping}, "
            f"arp={caps.can_read_arp}, elevated={caps.is_elevated}"
        )
        return caps


async def detect_capabilities(inspector: Optional[NetworkInspector] = None) -> ScanCapabilities:
    return await CapabilityDetector(inspector).detect()


def format_capabilities_message(caps: ScanCapabilities) -> str:
    """Operator-facing summary of a capability report."""
    if caps.mode == ScanMode.FULL:
        return "Scanning with full capabilities"

    message = "Scanning with limited capabilities:\n"
    if not caps.can_ping:
        message += "  - Ping sweep unavailable (will use ARP table only)\n"
    if not caps.can_read_arp:
        message += "  - ARP table reading unavailable\n"
    if not caps.can_resolve_hostnames:
        message += "  - Hostname resolution unavailable\n"
    if caps.elevation_instructions:
        message += "\nTo enable full scanning:\n"
        message += caps.elevation_instructions
    return message
