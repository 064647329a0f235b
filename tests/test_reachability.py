"""Tests for discovery/reachability.py and discovery/arp.py"""
import asyncio

import pytest

from config.exceptions import SubprocessError, UnreachableError
from discovery.arp import arp_ip_set, read_arp_table
from discovery.models import Device
from discovery.reachability import check_reachable, ping_device
from tests.mocks import FakeInspector


@pytest.mark.unit
class TestCheckReachable:

    def test_ping_latency_returned(self):
        inspector = FakeInspector(ping_times={"10.0.0.9": 3.2})
        assert asyncio.run(check_reachable("10.0.0.9", set(), inspector)) == 3.2

    def test_arp_fallback_is_untimed(self):
        """A device that drops ICMP but is in the ARP table is up at 0.0 ms."""
        inspector = FakeInspector()
        assert asyncio.run(check_reachable("10.0.0.9", {"10.0.0.9"}, inspector)) == 0.0

    def test_unreachable(self):
        with pytest.raises(UnreachableError) as exc_info:
            asyncio.run(check_reachable("10.0.0.9", {"10.0.0.8"}, FakeInspector()))
        assert exc_info.value.ip == "10.0.0.9"

    def test_ping_device_uses_health_timeout(self):
        timeouts = []

        class RecordingInspector(FakeInspector):
            async def ping(self, ip, timeout_s):
                timeouts.append(timeout_s)
                return None

        assert asyncio.run(ping_device("10.0.0.9", RecordingInspector())) is None
        assert timeouts == [2]


@pytest.mark.unit
class TestArpHelpers:

    def test_read_arp_table(self):
        inspector = FakeInspector(arp=[Device(ip="10.0.0.1", mac="00:11:22:33:44:55")])
        devices = asyncio.run(read_arp_table(inspector))
        assert [d.ip for d in devices] == ["10.0.0.1"]

    def test_missing_tool_yields_empty(self):
        inspector = FakeInspector(arp=SubprocessError("Command not found: arp"))
        assert asyncio.run(read_arp_table(inspector)) == []

    def test_ip_set(self):
        inspector = FakeInspector(arp=[Device(ip="10.0.0.1"), Device(ip="10.0.0.2")])
        assert asyncio.run(arp_ip_set(inspector)) == {"10.0.0.1", "10.0.0.2"}
