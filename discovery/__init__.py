"""Network discovery components.

This package finds and classifies the devices on the local subnet.

Modules:
    models: Device, NetworkInfo, ScanResult and progress types
    parsers: Pure parsers for OS utility output
    platforms: Per-OS network inspectors (ping, ARP, routes, lookups)
    topology: Active interface, subnet and gateway detection
    arp: ARP table harvesting
    sweep: Concurrent batched ping sweep
    resolver: Concurrent reverse hostname resolution
    vendor: MAC vendor lookup and device-type classification
    merge: Dedup and health-preserving merge
    capabilities: Ping/ARP/elevation capability detection
    cancellation: Process-wide scan cancellation flag
    reachability: Ping-then-ARP reachability check
    pipeline: The scan orchestrator

Example:
    >>> import asyncio
    >>> from discovery import run_discovery
    >>> result = asyncio.run(run_discovery())
    >>> print(f"{len(result.devices)} devices on {result.network_info.subnet}")
"""
from .cancellation import clear_cancel, is_cancelled, request_cancel
from .capabilities import CapabilityDetector, format_capabilities_message
from .merge import dedup_by_ip, merge_preserving_health
from .models import (
    Device,
    DeviceHealthResult,
    DeviceType,
    NetworkInfo,
    SchedulerState,
    ScanCapabilities,
    ScanMode,
    ScanProgress,
    ScanResult,
    ScanStage,
)
from .pipeline import DiscoveryPipeline, run_discovery
from .reachability import check_reachable, ping_device
from .vendor import classify, normalize_mac

__all__ = [
    # Models
    "Device",
    "DeviceHealthResult",
    "DeviceType",
    "NetworkInfo",
    "SchedulerState",
    "ScanCapabilities",
    "ScanMode",
    "ScanProgress",
    "ScanResult",
    "ScanStage",
    # Pipeline
    "DiscoveryPipeline",
    "run_discovery",
    "CapabilityDetector",
    "format_capabilities_message",
    # Cancellation
    "request_cancel",
    "clear_cancel",
    "is_cancelled",
    # Merge and classification
    "dedup_by_ip",
    "merge_preserving_health",
    "classify",
    "normalize_mac",
    # Reachability
    "check_reachable",
    "ping_device",
]
