"""Pytest configuration and shared fixtures.

This module provides:
- Common test fixtures for data directories and sample devices
- Captured OS command output for every supported platform format
- Pytest markers for test categorization (unit, integration, slow)
"""
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from discovery.cancellation import clear_cancel
from discovery.models import Device
from discovery.vendor import OUIDatabase
from tests.mocks import FakeInspector


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: mark test as a unit test (fast, isolated)")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(autouse=True)
def reset_cancel_flag() -> Generator[None, None, None]:
    """The cancel flag is process-wide; never leak it between tests."""
    clear_cancel()
    yield
    clear_cancel()


# =============================================================================
# Directory and Path Fixtures
# =============================================================================


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def oui_db() -> OUIDatabase:
    """Small in-memory OUI table."""
    return OUIDatabase(vendors={
        "AABBCC": "Apple, Inc.",
        "001122": "Cisco Systems, Inc",
        "D8EB46": "Firewalla Inc.",
        "000C29": "VMware, Inc.",
        "3C5282": "Hewlett Packard",
    })


@pytest.fixture
def fake_inspector() -> FakeInspector:
    """Inspector for a 192.168.1.0/24 network where nothing answers."""
    return FakeInspector()


@pytest.fixture
def sample_devices() -> list:
    return [
        Device(ip="192.168.1.1", mac="00:11:22:33:44:55", response_time_ms=1.2),
        Device(ip="192.168.1.20", mac="AA:BB:CC:00:00:01", hostname="macbook.lan"),
        Device(ip="192.168.1.30", response_time_ms=0.0),
    ]


# =============================================================================
# Captured Command Output
# =============================================================================


ARP_LINUX_OUTPUT = """\
Address                  HWtype  HWaddress           Flags Mask            Iface
192.168.1.1              ether   00:11:22:33:44:55   C                     eth0
192.168.1.20             ether   aa:bb:cc:00:00:01   C                     eth0
192.168.1.7                      (incomplete)                              eth0
192.168.1.99             ether   00:00:00:00:00:00   C                     eth0
192.168.1.20             ether   aa:bb:cc:00:00:99   C                     eth0
"""

IP_NEIGH_OUTPUT = """\
192.168.1.1 dev eth0 lladdr 00:11:22:33:44:55 REACHABLE
192.168.1.20 dev eth0 lladdr aa:bb:cc:00:00:01 STALE
192.168.1.8 dev eth0  FAILED
192.168.1.9 dev eth0 lladdr aa:bb:cc:00:00:09 FAILED
fe80::1 dev eth0 lladdr 00:11:22:33:44:55 router REACHABLE
"""

ARP_MACOS_OUTPUT = """\
? (192.168.1.1) at 0:11:22:33:44:55 on en0 ifscope [ethernet]
? (192.168.1.20) at aa:bb:cc:0:0:1 on en0 ifscope [ethernet]
? (192.168.1.7) at (incomplete) on en0 ifscope [ethernet]
? (192.168.1.255) at ff:ff:ff:ff:ff:ff on en0 ifscope [ethernet]
? (224.0.0.251) at 1:0:5e:0:0:fb on en0 ifscope permanent [ethernet]
"""

ARP_WINDOWS_OUTPUT = """\

Interface: 192.168.1.50 --- 0x7
  Internet Address      Physical Address      Type
  192.168.1.1           00-11-22-33-44-55     dynamic
  192.168.1.20          aa-bb-cc-00-00-01     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
  224.0.0.22            01-00-5e-00-00-16     static
  239.255.255.250       01-00-5e-7f-ff-fa     static
"""

PING_LINUX_SUCCESS = """\
PING 192.168.1.1 (192.168.1.1) 56(84) bytes of data.
64 bytes from 192.168.1.1: icmp_seq=1 ttl=64 time=2.41 ms

--- 192.168.1.1 ping statistics ---
1 packets transmitted, 1 received, 0% packet loss, time 0ms
"""

PING_WINDOWS_SUCCESS = """\
Pinging 192.168.1.1 with 32 bytes of data:
Reply from 192.168.1.1: bytes=32 time<1ms TTL=64

Ping statistics for 192.168.1.1:
    Packets: Sent = 1, Received = 1, Lost = 0 (0% loss),
"""

PING_WINDOWS_UNREACHABLE = """\
Pinging 192.168.1.77 with 32 bytes of data:
Reply from 192.168.1.50: Destination host unreachable.

Ping statistics for 192.168.1.77:
    Packets: Sent = 1, Received = 1, Lost = 0 (0% loss),
"""

IP_ROUTE_DEFAULT_OUTPUT = """\
default via 100.64.0.1 dev tailscale0 metric 5
default via 192.168.1.1 dev eth0 proto dhcp metric 100
"""

IP_ADDR_OUTPUT = """\
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP group default qlen 1000
    link/ether 52:54:00:12:34:56 brd ff:ff:ff:ff:ff:ff
    inet 192.168.1.50/24 brd 192.168.1.255 scope global dynamic eth0
       valid_lft 85000sec preferred_lft 85000sec
"""

ROUTE_GET_DEFAULT_OUTPUT = """\
   route to: default
destination: default
       mask: default
    gateway: 192.168.1.1
  interface: en0
      flags: <UP,GATEWAY,DONE,STATIC,PRCLONING>
"""

ROUTE_GET_DEFAULT_VPN_OUTPUT = """\
   route to: default
destination: default
    gateway: 10.8.0.1
  interface: utun4
"""

NETSTAT_ROUTES_OUTPUT = """\
Routing tables

Internet:
Destination        Gateway            Flags        Netif Expire
default            link#22            UCSg         utun4
default            192.168.1.1        UGScIg         en0
127                127.0.0.1          UCS            lo0
"""

IFCONFIG_EN0_OUTPUT = """\
en0: flags=8863<UP,BROADCAST,SMART,RUNNING,SIMPLEX,MULTICAST> mtu 1500
\tether a4:83:e7:12:34:56
\tinet6 fe80::1c2b:3c4d:5e6f:7a8b%en0 prefixlen 64 secured scopeid 0xe
\tinet 192.168.1.50 netmask 0xffffff00 broadcast 192.168.1.255
\tstatus: active
"""

IPCONFIG_OUTPUT = """\

Windows IP Configuration


Ethernet adapter vEthernet (WSL):

   Connection-specific DNS Suffix  . :
   IPv4 Address. . . . . . . . . . . : 172.20.48.1
   Subnet Mask . . . . . . . . . . . : 255.255.240.0
   Default Gateway . . . . . . . . . :

Wireless LAN adapter Wi-Fi:

   Connection-specific DNS Suffix  . : lan
   IPv6 Address. . . . . . . . . . . : fd00::1234
   IPv4 Address. . . . . . . . . . . : 192.168.1.50(Preferred)
   Subnet Mask . . . . . . . . . . . : 255.255.255.0
   Default Gateway . . . . . . . . . : fe80::1%12
                                       192.168.1.1
"""
