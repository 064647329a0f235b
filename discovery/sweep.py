"""Concurrent ping sweep of the local subnet.

Hosts are probed in fixed-size batches. Probes inside a batch run
concurrently; batches run strictly one after another, which bounds the
number of ping processes alive at any moment to the batch size.
"""
import asyncio
import ipaddress
from dataclasses import dataclass, field
from typing import List, Optional

from config import SCAN, get_logger
from config.exceptions import ScanError, ScanTimeoutError
from config.logging_config import LogContext
from discovery.cancellation import CancelFlag, get_cancel_flag
from discovery.models import Device
from discovery.platforms import NetworkInspector, get_inspector

logger = get_logger(__name__)


def candidate_hosts(subnet: str, limit: int = SCAN.MAX_SWEEP_HOSTS) -> List[str]:
    """Addresses to probe in ``subnet``.

    The network and broadcast addresses are skipped and at most ``limit``
    hosts are returned, lowest first.

    Raises:
        ScanError: If ``subnet`` is not a valid IPv4 CIDR.
    """
    try:
        network = ipaddress.IPv4Network(subnet, strict=False)
    except ValueError as e:
        raise ScanError(f"Invalid subnet: {subnet}", {"subnet": subnet}) from e

    hosts: List[str] = []
    for host in network.hosts():
        if host == network.network_address:
            continue
        hosts.append(str(host))
        if len(hosts) >= limit:
            break
    return hosts


@dataclass
class SweepResult:
    """Responders found by a sweep.

    When ``cancelled`` is set the sweep stopped at a batch boundary and
    ``devices`` holds the responders of the batches that completed. When a
    batch overran its budget ``timeout_error`` says which one, and
    ``devices`` again holds the responders found before it.
    """
    devices: List[Device] = field(default_factory=list)
    cancelled: bool = False
    hosts_probed: int = 0
    timeout_error: Optional[ScanTimeoutError] = None

    @property
    def timed_out(self) -> bool:
        return self.timeout_error is not None


class ProbeSweeper:
    """Pings every candidate host of a subnet in bounded batches.

    Example:
        >>> result = await ProbeSweeper().sweep("192.168.1.0/24")
        >>> print(f"{len(result.devices)} hosts answered")
    """

    def __init__(
        self,
        inspector: Optional[NetworkInspector] = None,
        cancel_flag: Optional[CancelFlag] = None,
        batch_size: int = SCAN.PING_BATCH_SIZE,
        ping_timeout: float = SCAN.SWEEP_PING_TIMEOUT_SECONDS,
        batch_budget: float = SCAN.SWEEP_BATCH_BUDGET_SECONDS,
    ):
        self.inspector = inspector or get_inspector()
        self.cancel_flag = cancel_flag or get_cancel_flag()
        self.batch_size = batch_size
        self.ping_timeout = ping_timeout
        self.batch_budget = batch_budget

    async def _probe(self, ip: str) -> Optional[Device]:
        # A failing host is just a non-responder
        try:
            latency = await self.inspector.ping(ip, self.ping_timeout)
        except Exception as e:
            logger.debug(f"Probe of {ip} failed: {e}")
            return None
        if latency is None:
            return None
        return Device(ip=ip, response_time_ms=latency)

    async def sweep(self, subnet: str) -> SweepResult:
        """Ping every candidate host of ``subnet``.

        A batch that runs longer than its budget ends the sweep early; the
        result then carries ``timeout_error``.

        Raises:
            ScanError: If the subnet is invalid.
        """
        hosts = candidate_hosts(subnet)
        result = SweepResult()

        with LogContext(logger, f"Ping sweep of {subnet}"):
            for start in range(0, len(hosts), self.batch_size):
                if self.cancel_flag.is_set():
                    logger.info(
                        f"Ping sweep cancelled after {result.hosts_probed} hosts, "
                        f"{len(result.devices)} responders kept"
                    )
                    result.cancelled = True
                    return result

                batch = hosts[start:start + self.batch_size]
                try:
                    found = await asyncio.wait_for(
                        asyncio.gather(*(self._probe(ip) for ip in batch)),
                        timeout=self.batch_budget,
                    )
                except asyncio.TimeoutError:
                    result.timeout_error = ScanTimeoutError(
                        f"Ping batch exceeded {self.batch_budget}s",
                        {"subnet": subnet, "batch_start": batch[0],
                         "responders": len(result.devices)},
                    )
                    logger.warning(
                        f"{result.timeout_error}, stopping sweep with "
                        f"{len(result.devices)} responders from earlier batches"
                    )
                    return result

                result.devices.extend(d for d in found if d is not None)
                result.hosts_probed += len(batch)

        logger.info(f"Ping sweep: {len(result.devices)}/{len(hosts)} hosts responded")
        return result
