"""OS network inspectors.

Each supported platform gets one ``NetworkInspector`` subclass that knows
which utilities to run and which parser reads their output. Business
logic talks only to the inspector returned by ``get_inspector()``.
"""
import ipaddress
import os
import platform
import shutil
import socket
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import psutil

from config import get_logger
from config.command_runner import CommandRunner, get_command_runner
from config.exceptions import SubprocessError
from discovery import parsers
from discovery.models import Device, NetworkInfo

logger = get_logger(__name__)

HostnameMethod = Callable[[str], Awaitable[Optional[str]]]

POWERSHELL_TOPOLOGY_SCRIPT = r"""
$virtualPatterns = @('vEthernet', 'WSL', 'Hyper-V', 'VirtualBox', 'VMware', 'Docker', 'Loopback', 'Tailscale')
$routes = Get-NetRoute -DestinationPrefix '0.0.0.0/0' -ErrorAction SilentlyContinue |
    Where-Object { $_.NextHop -ne '0.0.0.0' } | Sort-Object RouteMetric
$chosen = $null
foreach ($route in $routes) {
    $adapter = Get-NetAdapter -InterfaceIndex $route.InterfaceIndex -ErrorAction SilentlyContinue
    $skip = $false
    foreach ($p in $virtualPatterns) { if ($adapter.InterfaceAlias -like "*$p*") { $skip = $true; break } }
    if (-not $skip) { $chosen = $route; break }
}
if (-not $chosen) { $chosen = $routes | Select-Object -First 1 }
if ($chosen) {
    $iface = (Get-NetAdapter -InterfaceIndex $chosen.InterfaceIndex -ErrorAction SilentlyContinue).InterfaceAlias
    $ipInfo = Get-NetIPAddress -InterfaceIndex $chosen.InterfaceIndex -AddressFamily IPv4 -ErrorAction SilentlyContinue |
        Where-Object { $_.PrefixOrigin -ne 'WellKnown' -and $_.IPAddress -notlike '169.254.*' } |
        Select-Object -First 1
    if ($ipInfo) {
        $ipBytes = [System.Net.IPAddress]::Parse($ipInfo.IPAddress).GetAddressBytes()
        $maskInt = [uint32](0xFFFFFFFF -shl (32 - $ipInfo.PrefixLength))
        $maskBytes = [BitConverter]::GetBytes($maskInt)
        [Array]::Reverse($maskBytes)
        $net = @(); for ($i = 0; $i -lt 4; $i++) { $net += $ipBytes[$i] -band $maskBytes[$i] }
        $network = [System.Net.IPAddress]::new([byte[]]$net)
        Write-Output "$iface|$network/$($ipInfo.PrefixLength)|$($chosen.NextHop)|$($ipInfo.IPAddress)"
    }
}
"""


def interface_topology(preferred_interface: Optional[str] = None,
                       gateway_ip: Optional[str] = None) -> Optional[NetworkInfo]:
    """Build NetworkInfo from the host's interface list via psutil.

    Only interfaces that are up, non-virtual and carry a routable IPv4
    address are considered. The interface named by the default route wins,
    then one whose subnet contains the gateway, then the first candidate.
    """
    try:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
    except (OSError, psutil.Error) as e:
        logger.warning(f"Could not enumerate interfaces: {e}")
        return None

    candidates: List[NetworkInfo] = []
    for iface, addr_list in addrs.items():
        iface_stats = stats.get(iface)
        if iface_stats is not None and not iface_stats.isup:
            continue
        if parsers.is_virtual_interface(iface) and iface != preferred_interface:
            continue
        for addr in addr_list:
            if addr.family != socket.AF_INET or not addr.address:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback or ip.is_link_local:
                continue
            subnet = parsers.network_from_ip_mask(addr.address, addr.netmask or "255.255.255.0")
            if subnet:
                candidates.append(NetworkInfo(interface=iface, subnet=subnet,
                                              local_ip=addr.address))

    if not candidates:
        return None

    def _in_subnet(info: NetworkInfo) -> bool:
        if not gateway_ip:
            return False
        try:
            return ipaddress.IPv4Address(gateway_ip) in ipaddress.IPv4Network(info.subnet)
        except ValueError:
            return False

    best = (
        next((c for c in candidates if c.interface == preferred_interface), None)
        or next((c for c in candidates if _in_subnet(c)), None)
        or candidates[0]
    )
    return NetworkInfo(
        interface=best.interface,
        subnet=best.subnet,
        gateway_ip=gateway_ip if _in_subnet(best) else None,
        local_ip=best.local_ip,
    )


def has_tool(name: str) -> bool:
    return shutil.which(name) is not None


class NetworkInspector(ABC):
    """Platform-specific access to ping, ARP, routing and name lookups."""

    name = "generic"
    windows = False
    arp_tools: Tuple[str, ...] = ("arp",)

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or get_command_runner()

    # ------------------------------------------------------------------
    # Ping
    # ------------------------------------------------------------------

    @abstractmethod
    def ping_command(self, ip: str, timeout_s: float) -> List[str]:
        """Command sending a single echo request with the given timeout."""

    async def ping(self, ip: str, timeout_s: float) -> Optional[float]:
        """Ping once and return the latency in ms, or None if unreachable.

        Falls back to wall-clock time when the tool's output carries no
        parseable ``time=`` field.
        """
        start = time.monotonic()
        try:
            result = await self.runner.run(self.ping_command(ip, timeout_s),
                                           timeout=timeout_s + 2)
        except SubprocessError as e:
            logger.debug(f"Ping {ip} failed to run: {e}")
            return None
        elapsed_ms = (time.monotonic() - start) * 1000

        if not parsers.is_ping_success(result.stdout, result.returncode, windows=self.windows):
            return None
        parsed = parsers.parse_ping_time(result.stdout)
        return parsed if parsed is not None else elapsed_ms

    # ------------------------------------------------------------------
    # ARP
    # ------------------------------------------------------------------

    @abstractmethod
    async def read_arp_table(self, ttl: float = 0.0) -> List[Device]:
        """Read the neighbor table. May raise SubprocessError."""

    def can_read_arp(self) -> bool:
        return any(has_tool(tool) for tool in self.arp_tools)

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    @abstractmethod
    async def primary_topology(self) -> NetworkInfo:
        """Query the default route and its interface.

        The returned subnet is empty when the interface address could not
        be read; interface and gateway are still filled in when known.
        """

    async def secondary_topology(self, hint: Optional[NetworkInfo] = None) -> Optional[NetworkInfo]:
        return interface_topology(
            preferred_interface=hint.interface if hint else None,
            gateway_ip=hint.gateway_ip if hint else None,
        )

    # ------------------------------------------------------------------
    # Hostnames and identity
    # ------------------------------------------------------------------

    @abstractmethod
    def hostname_methods(self) -> Sequence[HostnameMethod]:
        """Ordered reverse-lookup methods; the first non-empty answer wins."""

    async def _lookup(self, cmd: List[str], parser: Callable[[str, str], Optional[str]],
                      ip: str, require_success: bool = True) -> Optional[str]:
        try:
            result = await self.runner.run(cmd)
        except SubprocessError as e:
            logger.debug(f"{cmd[0]} lookup for {ip} failed: {e}")
            return None
        if require_success and not result.ok:
            return None
        return parser(result.stdout, ip)

    async def is_elevated(self) -> bool:
        geteuid = getattr(os, "geteuid", None)
        return geteuid is not None and geteuid() == 0

    @abstractmethod
    def elevation_instructions(self) -> str:
        """Operator-facing steps for enabling full scan capabilities."""

    async def local_hostname(self) -> Optional[str]:
        try:
            result = await self.runner.run(["hostname"])
        except SubprocessError as e:
            logger.debug(f"Could not read local hostname: {e}")
            return None
        name = result.stdout.strip()
        return name if result.ok and name else None


class LinuxInspector(NetworkInspector):
    name = "linux"
    arp_tools = ("arp", "ip")

    def ping_command(self, ip: str, timeout_s: float) -> List[str]:
        return ["ping", "-c", "1", "-W", str(max(1, round(timeout_s))), ip]

    async def read_arp_table(self, ttl: float = 0.0) -> List[Device]:
        # net-tools is missing on many modern distros; iproute2 is the fallback
        try:
            result = await self.runner.run(["arp", "-n"], ttl=ttl)
            if result.ok:
                devices = parsers.parse_arp_linux(result.stdout)
                if devices:
                    return devices
        except SubprocessError as e:
            logger.debug(f"arp -n unavailable, trying ip neigh: {e}")

        result = await self.runner.run(["ip", "neigh", "show"], ttl=ttl)
        return parsers.parse_ip_neigh(result.stdout)

    async def primary_topology(self) -> NetworkInfo:
        route = await self.runner.run(["ip", "route", "show", "default"])
        gateway, interface = parsers.parse_linux_default_route(route.stdout)
        if not interface:
            return NetworkInfo(interface="", subnet="", gateway_ip=gateway)

        addr = await self.runner.run(["ip", "addr", "show", interface])
        parsed = parsers.parse_linux_addr(addr.stdout)
        if parsed is None:
            return NetworkInfo(interface=interface, subnet="", gateway_ip=gateway)
        local_ip, subnet = parsed
        return NetworkInfo(interface=interface, subnet=subnet, gateway_ip=gateway,
                           local_ip=local_ip)

    def hostname_methods(self) -> Sequence[HostnameMethod]:
        return (
            lambda ip: self._lookup(["getent", "hosts", ip], parsers.parse_getent_hosts, ip),
            lambda ip: self._lookup(["host", ip], parsers.parse_host_pointer, ip),
            lambda ip: self._lookup(["avahi-resolve", "-a", ip], parsers.parse_avahi_resolve, ip),
        )

    def elevation_instructions(self) -> str:
        return (
            "To run with full scan capabilities on Linux:\n"
            "\n"
            "Option 1 - Run as root (not recommended for regular use):\n"
            "$ sudo network-survey scan\n"
            "\n"
            "Option 2 - Grant CAP_NET_RAW to the ping binary:\n"
            "$ sudo setcap cap_net_raw+ep $(command -v ping)\n"
            "\n"
            "Option 3 - Ensure the system ping has setuid (usually default):\n"
            "$ ls -la $(command -v ping)  # Should show '-rwsr-xr-x'\n"
            "\n"
            "The agent uses the system ping command, which typically works\n"
            "without elevation on most Linux distributions."
        )


class MacOSInspector(NetworkInspector):
    name = "macos"

    def ping_command(self, ip: str, timeout_s: float) -> List[str]:
        # BSD ping: -t is the overall timeout in seconds (-W is milliseconds)
        return ["ping", "-c", "1", "-t", str(max(1, round(timeout_s))), ip]

    async def read_arp_table(self, ttl: float = 0.0) -> List[Device]:
        result = await self.runner.run(["arp", "-a", "-n"], ttl=ttl)
        return parsers.parse_arp_macos(result.stdout)

    async def primary_topology(self) -> NetworkInfo:
        route = await self.runner.run(["route", "-n", "get", "default"])
        gateway, interface = parsers.parse_macos_route(route.stdout)
        if parsers.is_virtual_interface(interface):
            # A VPN owns the default route; look for the physical one underneath
            netstat = await self.runner.run(["netstat", "-rn", "-f", "inet"])
            phys_gateway, phys_interface = parsers.parse_netstat_default_routes(netstat.stdout)
            if phys_interface and not parsers.is_virtual_interface(phys_interface):
                gateway, interface = phys_gateway, phys_interface
        if not interface:
            return NetworkInfo(interface="", subnet="", gateway_ip=gateway)

        ifconfig = await self.runner.run(["ifconfig", interface])
        parsed = parsers.parse_ifconfig_inet(ifconfig.stdout)
        if parsed is None:
            return NetworkInfo(interface=interface, subnet="", gateway_ip=gateway)
        local_ip, subnet = parsed
        return NetworkInfo(interface=interface, subnet=subnet, gateway_ip=gateway,
                           local_ip=local_ip)

    def hostname_methods(self) -> Sequence[HostnameMethod]:
        return (
            lambda ip: self._lookup(["getent", "hosts", ip], parsers.parse_getent_hosts, ip),
            lambda ip: self._lookup(["host", ip], parsers.parse_host_pointer, ip),
            lambda ip: self._lookup(["dscacheutil", "-q", "host", "-a", "ip_address", ip],
                                    parsers.parse_dscacheutil, ip),
        )

    def elevation_instructions(self) -> str:
        return (
            "To run with full scan capabilities on macOS:\n"
            "\n"
            "Option 1 - Run as root (not recommended for regular use):\n"
            "$ sudo network-survey scan\n"
            "\n"
            "Note: Most scan features work without root on macOS.\n"
            "If you're experiencing issues, check System Settings > Privacy & Security."
        )


class WindowsInspector(NetworkInspector):
    name = "windows"
    windows = True

    def ping_command(self, ip: str, timeout_s: float) -> List[str]:
        return ["ping", "-n", "1", "-w", str(int(timeout_s * 1000)), ip]

    async def read_arp_table(self, ttl: float = 0.0) -> List[Device]:
        result = await self.runner.run(["arp", "-a"], ttl=ttl)
        return parsers.parse_arp_windows(result.stdout)

    async def primary_topology(self) -> NetworkInfo:
        result = await self.runner.run(["ipconfig"])
        info = parsers.parse_ipconfig(result.stdout)
        return info or NetworkInfo(interface="", subnet="")

    async def secondary_topology(self, hint: Optional[NetworkInfo] = None) -> Optional[NetworkInfo]:
        try:
            result = await self.runner.run(
                ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass",
                 "-Command", POWERSHELL_TOPOLOGY_SCRIPT],
                timeout=15.0,
            )
            info = parsers.parse_powershell_topology(result.stdout)
            if info is not None and parsers.is_usable_subnet(info.subnet):
                return info
        except SubprocessError as e:
            logger.debug(f"PowerShell topology query failed: {e}")
        return await super().secondary_topology(hint)

    def hostname_methods(self) -> Sequence[HostnameMethod]:
        return (self._resolve_dns_ptr, self._nbtstat)

    async def _resolve_dns_ptr(self, ip: str) -> Optional[str]:
        script = (
            f"try {{ (Resolve-DnsName -Name '{ip}' -Type PTR -ErrorAction Stop).NameHost }} "
            f"catch {{ }}"
        )
        return await self._lookup(
            ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script],
            parsers.parse_resolve_dnsname, ip,
        )

    async def _nbtstat(self, ip: str) -> Optional[str]:
        return await self._lookup(["nbtstat", "-A", ip], parsers.parse_nbtstat, ip,
                                  require_success=False)

    async def is_elevated(self) -> bool:
        try:
            result = await self.runner.run(["whoami", "/groups"])
        except SubprocessError as e:
            logger.debug(f"Elevation check failed: {e}")
            return False
        return parsers.parse_whoami_groups(result.stdout)

    def elevation_instructions(self) -> str:
        return (
            "To run with full scan capabilities on Windows:\n"
            "1. Open a terminal with 'Run as administrator'\n"
            "2. Start network-survey from that terminal\n"
            "\n"
            "Note: Most scan features work without admin rights on Windows."
        )

    async def local_hostname(self) -> Optional[str]:
        return os.environ.get("COMPUTERNAME") or await super().local_hostname()


INSPECTORS = {
    "Linux": LinuxInspector,
    "Darwin": MacOSInspector,
    "Windows": WindowsInspector,
}

_inspector: Optional[NetworkInspector] = None


def get_inspector() -> NetworkInspector:
    """Return the inspector for the running platform (created once)."""
    global _inspector
    if _inspector is None:
        system = platform.system()
        inspector_cls = INSPECTORS.get(system)
        if inspector_cls is None:
            logger.warning(f"Unsupported platform {system!r}, assuming Linux utilities")
            inspector_cls = LinuxInspector
        _inspector = inspector_cls()
        logger.debug(f"Using {_inspector.name} network inspector")
    return _inspector
