"""Data model shared by the discovery pipeline, health checks and the agent.

All models serialize with ``to_dict``/``from_dict`` so the same shapes are
used for the persisted agent state, JSON CLI output and upload payloads.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config import INTERVALS


class DeviceType:
    """Closed set of device-type tags assigned by the vendor classifier."""
    FIREWALL = "firewall"
    NETWORK_DEVICE = "network_device"
    SERVICE = "service"
    SERVER = "server"
    APPLE = "apple"
    NAS = "nas"
    IOT = "iot"
    PRINTER = "printer"
    GAMING = "gaming"
    MOBILE = "mobile"
    COMPUTER = "computer"

    ALL = frozenset({
        FIREWALL, NETWORK_DEVICE, SERVICE, SERVER, APPLE, NAS,
        IOT, PRINTER, GAMING, MOBILE, COMPUTER,
    })


@dataclass
class Device:
    """A host discovered on the local network.

    ``response_time_ms`` is ``None`` when reachability is unknown, ``0.0``
    when the host is known to be up but was not timed (local machine or
    ARP-only evidence), and positive when a ping round trip was measured.
    """
    ip: str
    mac: Optional[str] = None
    response_time_ms: Optional[float] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = None
    device_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "mac": self.mac,
            "response_time_ms": self.response_time_ms,
            "hostname": self.hostname,
            "vendor": self.vendor,
            "device_type": self.device_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Device':
        return cls(
            ip=data["ip"],
            mac=data.get("mac"),
            response_time_ms=data.get("response_time_ms"),
            hostname=data.get("hostname"),
            vendor=data.get("vendor"),
            device_type=data.get("device_type"),
        )

    @property
    def display_name(self) -> str:
        """Best human-readable name: hostname, then vendor, then IP."""
        if self.hostname and self.hostname != self.ip:
            return self.hostname
        if self.vendor:
            return self.vendor
        return self.ip


@dataclass(frozen=True)
class NetworkInfo:
    """Active interface, subnet and gateway of the scanning host."""
    interface: str
    subnet: str
    gateway_ip: Optional[str] = None
    local_ip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interface": self.interface,
            "subnet": self.subnet,
            "gateway_ip": self.gateway_ip,
            "local_ip": self.local_ip,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkInfo':
        return cls(
            interface=data.get("interface", ""),
            subnet=data.get("subnet", ""),
            gateway_ip=data.get("gateway_ip"),
            local_ip=data.get("local_ip"),
        )


class ScanMode(str, Enum):
    FULL = "full"
    LIMITED = "limited"


@dataclass
class ScanCapabilities:
    """What the current process is able to do, detected per scan."""
    mode: ScanMode
    can_ping: bool
    can_read_arp: bool = True
    can_resolve_hostnames: bool = True
    is_elevated: bool = False
    warning: Optional[str] = None
    elevation_instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "can_ping": self.can_ping,
            "can_read_arp": self.can_read_arp,
            "can_resolve_hostnames": self.can_resolve_hostnames,
            "is_elevated": self.is_elevated,
            "warning": self.warning,
            "elevation_instructions": self.elevation_instructions,
        }


@dataclass
class ScanResult:
    """Outcome of one discovery pipeline run.

    ``cancelled`` is set when the run stopped early on request; the device
    list then holds whatever was found before the stop.
    """
    devices: List[Device]
    network_info: NetworkInfo
    capabilities: ScanCapabilities
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.devices],
            "network_info": self.network_info.to_dict(),
            "capabilities": self.capabilities.to_dict(),
            "cancelled": self.cancelled,
        }


class ScanStage(str, Enum):
    STARTING = "starting"
    DETECTING_NETWORK = "detecting_network"
    READING_ARP = "reading_arp"
    PING_SWEEP = "ping_sweep"
    RESOLVING_HOSTNAMES = "resolving_hostnames"
    CHECKING_DEVICES = "checking_devices"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    FAILED = "failed"
    PRIVILEGE_REQUIRED = "privilege_required"


@dataclass(frozen=True)
class ScanProgress:
    """Progress update emitted to the optional progress callback."""
    stage: ScanStage
    message: str
    percent: Optional[int] = None
    devices_found: Optional[int] = None
    elapsed_secs: float = 0.0


@dataclass(frozen=True)
class DeviceHealthResult:
    ip: str
    reachable: bool
    response_time_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "reachable": self.reachable,
            "response_time_ms": self.response_time_ms,
        }


@dataclass
class SchedulerState:
    """Agent state persisted between runs."""
    known_devices: List[Device] = field(default_factory=list)
    last_scan_time: Optional[float] = None
    scan_interval_seconds: int = INTERVALS.SCAN_INTERVAL_SECONDS
    health_check_interval_seconds: int = INTERVALS.HEALTH_CHECK_INTERVAL_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.known_devices],
            "last_scan_time": self.last_scan_time,
            "scan_interval_seconds": self.scan_interval_seconds,
            "health_check_interval_seconds": self.health_check_interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchedulerState':
        return cls(
            known_devices=[Device.from_dict(d) for d in data.get("devices", [])],
            last_scan_time=data.get("last_scan_time"),
            scan_interval_seconds=data.get(
                "scan_interval_seconds", INTERVALS.SCAN_INTERVAL_SECONDS),
            health_check_interval_seconds=data.get(
                "health_check_interval_seconds", INTERVALS.HEALTH_CHECK_INTERVAL_SECONDS),
        )
