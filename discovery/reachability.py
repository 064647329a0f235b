"""Single-device reachability check used by health checks.

Devices whose firewall drops ICMP still show up in the ARP table while
they are on the link; those count as reachable with an untimed 0.0 ms.
"""
from typing import Collection, Optional

from config import SCAN, get_logger
from config.exceptions import UnreachableError
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)


async def ping_device(ip: str, inspector: Optional[NetworkInspector] = None) -> Optional[float]:
    """Ping once with the health-check timeout; latency in ms or None."""
    inspector = inspector or get_inspector()
    return await inspector.ping(ip, SCAN.HEALTH_PING_TIMEOUT_SECONDS)


async def check_reachable(ip: str, arp_ips: Collection[str],
                          inspector: Optional[NetworkInspector] = None) -> float:
    """Check whether ``ip`` is up.

    Args:
        ip: Device address.
        arp_ips: Snapshot of the IPs currently in the ARP table.

    Returns:
        Measured latency in ms, or 0.0 when only the ARP table vouches for it.

    Raises:
        UnreachableError: If the ping fails and the IP is not in ``arp_ips``.
    """
    latency = await ping_device(ip, inspector)
    if latency is not None:
        return latency
    if ip in arp_ips:
        logger.debug(f"{ip} ignores ping but is present in ARP table")
        return 0.0
    raise UnreachableError(ip)
