"""Network topology detection.

Determines the interface carrying the default route, its subnet, the
gateway and the local address. The platform route query is tried first;
interface enumeration is the fallback.
"""
from typing import Optional

from config import get_logger
from config.exceptions import NetworkNotAvailableError, SubprocessError
from discovery.models import NetworkInfo
from discovery.parsers import is_usable_subnet
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)


class TopologyDetector:
    """Resolves the NetworkInfo for the current host.

    Example:
        >>> info = await TopologyDetector().detect()
        >>> print(f"{info.subnet} on {info.interface}")
    """

    def __init__(self, inspector: Optional[NetworkInspector] = None):
        self.inspector = inspector or get_inspector()

    async def detect(self) -> NetworkInfo:
        """Detect the active network.

        Raises:
            NetworkNotAvailableError: If neither method yields a usable subnet.
        """
        hint: Optional[NetworkInfo] = None
        try:
            info = await self.inspector.primary_topology()
            if is_usable_subnet(info.subnet):
                logger.info(
                    f"Network: {info.subnet} on {info.interface} (gateway: {info.gateway_ip})"
                )
                return info
            hint = info
            logger.warning(
                f"Route query returned unusable subnet {info.subnet!r} "
                f"on {info.interface or 'unknown interface'}, trying interface list"
            )
        except SubprocessError as e:
            logger.warning(f"Route query failed, trying interface list: {e}")

        info = await self.inspector.secondary_topology(hint)
        if info is not None and is_usable_subnet(info.subnet):
            logger.info(
                f"Network (fallback): {info.subnet} on {info.interface} "
                f"(gateway: {info.gateway_ip})"
            )
            return info

        raise NetworkNotAvailableError(
            "Could not determine the local network",
            {
                "platform": self.inspector.name,
                "interface": hint.interface if hint else None,
                "gateway": hint.gateway_ip if hint else None,
            },
        )


async def detect_network(inspector: Optional[NetworkInspector] = None) -> NetworkInfo:
    return await TopologyDetector(inspector).detect()
