"""Centralized constants and configuration for Network Survey.

All tunable numbers for scanning, health checks and storage live here so
the discovery and agent packages never hard-code them.

Usage:
    from config.constants import INTERVALS, SCAN, STORAGE

    batch_size = SCAN.PING_BATCH_SIZE
    scan_every = INTERVALS.SCAN_INTERVAL_SECONDS
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Intervals:
    """Time intervals for scheduler loops and subprocess calls (in seconds)."""
    # Scheduler cadences
    SCAN_INTERVAL_SECONDS: int = 300         # Full discovery scan
    HEALTH_CHECK_INTERVAL_SECONDS: int = 60  # Lightweight reachability check
    MIN_INTERVAL_SECONDS: int = 10
    MAX_INTERVAL_SECONDS: int = 86400

    # Scheduler loops wake this often to notice interval changes
    LOOP_POLL_SECONDS: float = 1.0

    # Subprocess timeouts
    SUBPROCESS_TIMEOUT_SECONDS: float = 5.0

    # ARP snapshot reuse for health checks
    ARP_SNAPSHOT_TTL_SECONDS: float = 5.0


@dataclass(frozen=True)
class ScanConfig:
    """Discovery pipeline limits and per-probe timeouts."""
    # Probe sweep
    PING_BATCH_SIZE: int = 50
    MAX_SWEEP_HOSTS: int = 253
    SWEEP_PING_TIMEOUT_SECONDS: int = 1
    SWEEP_BATCH_BUDGET_SECONDS: float = 30.0

    # Health-check pings are allowed longer than the sweep
    HEALTH_PING_TIMEOUT_SECONDS: int = 2
    HEALTH_CHECK_BATCH_SIZE: int = 50

    # Loopback probe used for capability detection
    LOOPBACK_ADDRESS: str = "127.0.0.1"
    LOOPBACK_PING_TIMEOUT_MS: int = 500

    # Hostname resolution
    RESOLVE_BATCH_SIZE: int = 32
    RESOLVE_TIMEOUT_SECONDS: float = 2.0
    RESOLVE_TIMEOUT_WINDOWS_SECONDS: float = 5.0


@dataclass(frozen=True)
class StorageConfig:
    """Storage and file-related configuration."""
    DATA_DIR_NAME: str = ".network-survey"
    STATE_FILE: str = "agent_state.json"
    LOG_FILE: str = "network_survey.log"
    LAST_SCAN_UPLOAD_FILE: str = "last_scan.json"
    LAST_HEALTH_UPLOAD_FILE: str = "last_health.json"

    # Log rotation
    LOG_MAX_BYTES: int = 5_000_000  # 5MB
    LOG_BACKUP_COUNT: int = 3


@dataclass(frozen=True)
class NetworkConfig:
    """Network-related configuration."""
    # Interface names that are never the LAN we want to scan
    VIRTUAL_ADAPTER_PATTERNS: Tuple[str, ...] = (
        "vEthernet",
        "WSL",
        "Hyper-V",
        "VirtualBox",
        "VMware",
        "Docker",
        "Loopback",
        "Tailscale",
    )
    TUNNEL_INTERFACE_PREFIXES: Tuple[str, ...] = (
        "lo",
        "utun",
        "tun",
        "tap",
        "wg",
        "tailscale",
        "ppp",
        "docker",
        "br-",
        "veth",
        "virbr",
        "vmnet",
        "vboxnet",
        "awdl",
        "llw",
        "bridge",
    )

    # Windows ping output phrases that mean the probe failed despite rc=0
    WINDOWS_PING_FAILURE_PHRASES: Tuple[str, ...] = (
        "request timed out",
        "destination host unreachable",
        "transmit failed",
        "general failure",
    )

    # Windows ARP entries in these ranges are multicast/broadcast
    WINDOWS_ARP_SKIP_PREFIXES: Tuple[str, ...] = ("224.", "239.")


# Global instances - import these
INTERVALS = Intervals()
SCAN = ScanConfig()
STORAGE = StorageConfig()
NETWORK = NetworkConfig()


# Allowed commands for subprocess safety
ALLOWED_SUBPROCESS_COMMANDS = frozenset({
    'arp',
    'ip',
    'ping',
    'route',
    'ifconfig',
    'ipconfig',
    'powershell',
    'getent',
    'host',
    'avahi-resolve',
    'nbtstat',
    'whoami',
    'hostname',
    'dscacheutil',
    'netstat',
})
