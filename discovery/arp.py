"""ARP table harvesting.

Reading the neighbor table generates no network traffic, so it is always
the first discovery source and the fallback evidence for reachability.
"""
from typing import List, Optional, Set

from config import get_logger
from config.exceptions import SubprocessError
from discovery.models import Device
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)


async def read_arp_table(inspector: Optional[NetworkInspector] = None,
                         ttl: float = 0.0) -> List[Device]:
    """Read the OS ARP table.

    Never raises: a missing tool or unreadable output yields an empty list.

    Args:
        inspector: Platform inspector (defaults to the running platform's).
        ttl: Reuse an ARP snapshot younger than this many seconds.

    Returns:
        One Device per IP with its MAC, in table order.
    """
    inspector = inspector or get_inspector()
    try:
        devices = await inspector.read_arp_table(ttl=ttl)
    except SubprocessError as e:
        logger.warning(f"Could not read ARP table: {e}")
        return []

    logger.debug(f"ARP table: {len(devices)} entries")
    return devices


async def arp_ip_set(inspector: Optional[NetworkInspector] = None,
                     ttl: float = 0.0) -> Set[str]:
    """IPs currently present in the ARP table."""
    return {device.ip for device in await read_arp_table(inspector, ttl=ttl)}
