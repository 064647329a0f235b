"""Device list merging.

``dedup_by_ip`` collapses the ARP and ping views of one scan into a single
record per IP. ``merge_preserving_health`` folds a fresh scan into the
previously known set without losing timings or hostnames the fresh scan
did not refresh.
"""
from dataclasses import replace
from typing import Dict, Iterable, List

from discovery.models import Device


def _has_timing(value) -> bool:
    return value is not None and value > 0


def dedup_by_ip(devices: Iterable[Device]) -> List[Device]:
    """Return one device per IP, keeping the most complete record.

    Order follows the first appearance of each IP. Missing fields are
    filled from later duplicates, and a measured (non-zero) timing replaces
    a zero or missing one. Input devices are not modified.
    """
    by_ip: Dict[str, Device] = {}

    for device in devices:
        existing = by_ip.get(device.ip)
        if existing is None:
            by_ip[device.ip] = replace(device)
            continue

        if existing.mac is None:
            existing.mac = device.mac
        if existing.hostname is None:
            existing.hostname = device.hostname
        if existing.vendor is None:
            existing.vendor = device.vendor
        if existing.device_type is None:
            existing.device_type = device.device_type
        if existing.response_time_ms is None or (
            _has_timing(device.response_time_ms) and not _has_timing(existing.response_time_ms)
        ):
            if device.response_time_ms is not None:
                existing.response_time_ms = device.response_time_ms

    return list(by_ip.values())


def merge_preserving_health(fresh: Iterable[Device], known: Iterable[Device]) -> List[Device]:
    """Merge a fresh scan with the previously known devices.

    The fresh scan decides which devices exist: devices only in ``known``
    are dropped and new ones are kept as-is. For devices in both, an
    absent or zero timing and an absent hostname are taken from the known
    record.
    """
    known_by_ip = {d.ip: d for d in known}
    merged: List[Device] = []

    for device in fresh:
        device = replace(device)
        old = known_by_ip.get(device.ip)
        if old is not None:
            if not device.response_time_ms and old.response_time_ms is not None:
                device.response_time_ms = old.response_time_ms
            if device.hostname is None and old.hostname is not None:
                device.hostname = old.hostname
        merged.append(device)

    return merged
