"""Tests for discovery/merge.py"""
import pytest

from discovery.merge import dedup_by_ip, merge_preserving_health
from discovery.models import Device


@pytest.mark.unit
class TestDedupByIp:
    """Intra-scan dedup of ARP and ping views."""

    def test_one_entry_per_ip(self):
        devices = [
            Device(ip="10.0.0.1", mac="00:11:22:33:44:55"),
            Device(ip="10.0.0.2"),
            Device(ip="10.0.0.1", response_time_ms=3.5),
        ]
        result = dedup_by_ip(devices)
        assert [d.ip for d in result] == ["10.0.0.1", "10.0.0.2"]

    def test_fields_filled_from_any_duplicate(self):
        devices = [
            Device(ip="10.0.0.1", mac="00:11:22:33:44:55"),
            Device(ip="10.0.0.1", hostname="router.lan", response_time_ms=3.5),
            Device(ip="10.0.0.1", vendor="Cisco", device_type="network_device"),
        ]
        merged = dedup_by_ip(devices)[0]
        assert merged.mac == "00:11:22:33:44:55"
        assert merged.hostname == "router.lan"
        assert merged.response_time_ms == 3.5
        assert merged.vendor == "Cisco"
        assert merged.device_type == "network_device"

    def test_nonzero_timing_beats_zero(self):
        devices = [
            Device(ip="10.0.0.1", response_time_ms=0.0),
            Device(ip="10.0.0.1", response_time_ms=7.0),
        ]
        assert dedup_by_ip(devices)[0].response_time_ms == 7.0

    def test_zero_timing_beats_missing(self):
        devices = [
            Device(ip="10.0.0.1"),
            Device(ip="10.0.0.1", response_time_ms=0.0),
        ]
        assert dedup_by_ip(devices)[0].response_time_ms == 0.0

    def test_first_measured_timing_kept(self):
        devices = [
            Device(ip="10.0.0.1", response_time_ms=2.0),
            Device(ip="10.0.0.1", response_time_ms=9.0),
        ]
        assert dedup_by_ip(devices)[0].response_time_ms == 2.0

    def test_present_value_not_overwritten(self):
        devices = [
            Device(ip="10.0.0.1", hostname="first"),
            Device(ip="10.0.0.1", hostname="second"),
        ]
        assert dedup_by_ip(devices)[0].hostname == "first"

    def test_inputs_not_modified(self):
        first = Device(ip="10.0.0.1")
        dedup_by_ip([first, Device(ip="10.0.0.1", hostname="x")])
        assert first.hostname is None

    def test_empty(self):
        assert dedup_by_ip([]) == []


@pytest.mark.unit
class TestMergePreservingHealth:
    """Cross-cycle merge of a fresh scan into the known devices."""

    def test_missing_timing_copied_from_known(self):
        fresh = [Device(ip="10.0.0.5", response_time_ms=None)]
        known = [Device(ip="10.0.0.5", response_time_ms=12.3)]
        assert merge_preserving_health(fresh, known)[0].response_time_ms == 12.3

    def test_zero_timing_copied_from_known(self):
        fresh = [Device(ip="10.0.0.5", response_time_ms=0.0)]
        known = [Device(ip="10.0.0.5", response_time_ms=12.3)]
        assert merge_preserving_health(fresh, known)[0].response_time_ms == 12.3

    def test_fresh_timing_wins(self):
        fresh = [Device(ip="10.0.0.5", response_time_ms=4.0)]
        known = [Device(ip="10.0.0.5", response_time_ms=12.3)]
        assert merge_preserving_health(fresh, known)[0].response_time_ms == 4.0

    def test_hostname_copied_when_absent(self):
        fresh = [Device(ip="10.0.0.5")]
        known = [Device(ip="10.0.0.5", hostname="nas.lan")]
        assert merge_preserving_health(fresh, known)[0].hostname == "nas.lan"

    def test_devices_only_in_known_are_dropped(self):
        fresh = [Device(ip="10.0.0.5")]
        known = [Device(ip="10.0.0.5"), Device(ip="10.0.0.6", hostname="gone")]
        assert [d.ip for d in merge_preserving_health(fresh, known)] == ["10.0.0.5"]

    def test_new_devices_kept_as_is(self):
        fresh = [Device(ip="10.0.0.7", mac="AA:BB:CC:DD:EE:FF")]
        merged = merge_preserving_health(fresh, [])
        assert merged == fresh
        assert merged[0] is not fresh[0]
