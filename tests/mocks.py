"""Mock implementations for testing Network Survey.

Provides fake versions of the OS-facing components so discovery, health
checks and the scheduler can be tested without running real commands.

Usage:
    from tests.mocks import FakeInspector, FakeRunner, make_result

    inspector = FakeInspector(ping_times={"192.168.1.1": 1.5})
    runner = FakeRunner({("arp", "-n"): make_result(ARP_OUTPUT)})
"""

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple, Union
from unittest.mock import MagicMock

from config.command_runner import CommandResult
from config.exceptions import StorageError, SubprocessError, UploadError
from discovery.models import Device, NetworkInfo, SchedulerState
from discovery.platforms import NetworkInspector

DEFAULT_NETWORK = NetworkInfo(
    interface="eth0",
    subnet="192.168.1.0/24",
    gateway_ip="192.168.1.1",
    local_ip="192.168.1.50",
)


def make_result(stdout: str = "", returncode: int = 0, cmd: Sequence[str] = ("fake",),
                stderr: str = "") -> CommandResult:
    """Build a CommandResult as if the command had just run."""
    return CommandResult(command=tuple(cmd), returncode=returncode, stdout=stdout,
                         stderr=stderr, duration_ms=1.0)


# === Mock Components ===


class FakeRunner:
    """Stand-in for CommandRunner returning canned results.

    ``outputs`` maps a command prefix tuple to a CommandResult or an
    exception to raise. The longest matching prefix wins; unmatched
    commands raise SubprocessError("Command not found").
    """

    def __init__(self, outputs: Optional[Dict[Tuple[str, ...], Union[CommandResult, Exception]]] = None):
        self.outputs = dict(outputs or {})
        self.calls: List[List[str]] = []
        self.ttls: List[float] = []
        self.default_timeout = 5.0

    async def run(self, cmd, timeout=None, ttl=0.0, check_allowed=True) -> CommandResult:
        self.calls.append(list(cmd))
        self.ttls.append(ttl)
        matches = [key for key in self.outputs if tuple(cmd[:len(key)]) == key]
        if not matches:
            raise SubprocessError(f"Command not found: {cmd[0]}", command=list(cmd))
        value = self.outputs[max(matches, key=len)]
        if isinstance(value, Exception):
            raise value
        return value


class FakeInspector(NetworkInspector):
    """NetworkInspector with scripted answers and call recording."""

    name = "fake"

    def __init__(
        self,
        ping_times: Optional[Dict[str, float]] = None,
        arp: Union[List[Device], Exception, None] = None,
        topology: Union[NetworkInfo, Exception, None] = DEFAULT_NETWORK,
        secondary: Optional[NetworkInfo] = None,
        hostnames: Optional[Dict[str, str]] = None,
        elevated: bool = False,
        arp_available: bool = True,
        local_name: Optional[str] = "agent-host",
        windows: bool = False,
    ):
        super().__init__(runner=MagicMock())
        self.ping_times = dict(ping_times or {})
        self.arp = arp if arp is not None else []
        self.topology = topology
        self.secondary = secondary
        self.hostnames = dict(hostnames or {})
        self.elevated = elevated
        self.arp_available = arp_available
        self.local_name = local_name
        self.windows = windows

        self.pinged: List[str] = []
        self.arp_reads = 0
        self.secondary_hint: Optional[NetworkInfo] = None
        self.lookups: List[str] = []

    def ping_command(self, ip: str, timeout_s: float) -> List[str]:
        return ["ping", ip]

    async def ping(self, ip: str, timeout_s: float) -> Optional[float]:
        self.pinged.append(ip)
        return self.ping_times.get(ip)

    async def read_arp_table(self, ttl: float = 0.0) -> List[Device]:
        self.arp_reads += 1
        if isinstance(self.arp, Exception):
            raise self.arp
        return [replace(d) for d in self.arp]

    def can_read_arp(self) -> bool:
        return self.arp_available

    async def primary_topology(self) -> NetworkInfo:
        if isinstance(self.topology, Exception):
            raise self.topology
        return self.topology

    async def secondary_topology(self, hint: Optional[NetworkInfo] = None) -> Optional[NetworkInfo]:
        self.secondary_hint = hint
        return self.secondary

    def hostname_methods(self):
        return (self._hosts_lookup,)

    async def _hosts_lookup(self, ip: str) -> Optional[str]:
        self.lookups.append(ip)
        return self.hostnames.get(ip)

    async def is_elevated(self) -> bool:
        return self.elevated

    def elevation_instructions(self) -> str:
        return "Run as root"

    async def local_hostname(self) -> Optional[str]:
        return self.local_name


class MemoryStateStore:
    """StateStore replacement that keeps state in memory."""

    def __init__(self, state=None, fail_on_save: bool = False):
        self.state = state or SchedulerState()
        self.fail_on_save = fail_on_save
        self.saves = 0

    def load_state(self):
        return self.state

    def save_state(self, state) -> None:
        if self.fail_on_save:
            raise StorageError("disk full")
        self.saves += 1
        self.state = state


class RecordingUploader:
    """Uploader that records payloads and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.scans = []
        self.health = []

    def upload_scan(self, result) -> None:
        if self.fail:
            raise UploadError("service unavailable")
        self.scans.append(result)

    def upload_health(self, results) -> None:
        if self.fail:
            raise UploadError("service unavailable")
        self.health.append(results)
