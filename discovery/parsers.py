"""Pure parsers for the text output of OS network utilities.

Nothing in this module spawns processes; each function takes captured
output and returns structured data, so every platform format can be
tested from fixture strings.
"""
import ipaddress
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from config import NETWORK
from discovery.models import Device, NetworkInfo

# "? (192.168.1.1) at 0:11:22:33:44:55 on en0 ifscope [ethernet]"
MACOS_ARP_PATTERN = re.compile(r'\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+(\S+)')

MAC_OCTET_PATTERN = re.compile(r'^[0-9A-Fa-f]{1,2}$')

IP_NEIGH_BAD_STATES = frozenset({"FAILED", "INCOMPLETE"})


# ============================================================================
# ARP / neighbor tables
# ============================================================================

def _parse_ipv4(value: str) -> Optional[ipaddress.IPv4Address]:
    try:
        return ipaddress.IPv4Address(value)
    except ValueError:
        return None


def canonical_arp_mac(raw_mac: str) -> Optional[str]:
    """Convert an ARP-table MAC to uppercase colon form.

    Octets may be unpadded (macOS prints ``0:1c:42:a:b:c``) and separated
    by colons or dashes. Returns None for malformed, all-zero, broadcast
    and multicast addresses.
    """
    parts = re.split(r'[:-]', raw_mac.strip())
    if len(parts) != 6 or not all(MAC_OCTET_PATTERN.match(p) for p in parts):
        return None

    octets = [p.zfill(2).upper() for p in parts]
    mac = ":".join(octets)
    if mac == "00:00:00:00:00:00" or mac == "FF:FF:FF:FF:FF:FF":
        return None
    # Group bit set: multicast (01:00:5E..., 33:33:...)
    if int(octets[0], 16) & 0x01:
        return None
    return mac


def _collect_arp_entries(entries: Iterable[Tuple[str, str]]) -> List[Device]:
    """Validate (ip, mac) pairs and keep the first entry for each IP."""
    devices: List[Device] = []
    seen = set()
    for raw_ip, raw_mac in entries:
        ip = _parse_ipv4(raw_ip)
        if ip is None or ip.is_multicast or ip.is_unspecified or str(ip) == "255.255.255.255":
            continue
        mac = canonical_arp_mac(raw_mac)
        if mac is None:
            continue
        ip_str = str(ip)
        if ip_str in seen:
            continue
        seen.add(ip_str)
        devices.append(Device(ip=ip_str, mac=mac))
    return devices


def parse_arp_linux(output: str) -> List[Device]:
    """Parse ``arp -n`` output (net-tools).

    Address                  HWtype  HWaddress           Flags Mask            Iface
    192.168.1.1              ether   aa:bb:cc:dd:ee:ff   C                     eth0
    192.168.1.7                      (incomplete)                              eth0
    """
    entries = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 3 or parts[0] == "Address":
            continue
        mac = parts[2]
        # Require the full colon form; incomplete rows shift the iface into column 3
        if ':' not in mac or len(mac) != 17:
            continue
        entries.append((parts[0], mac))
    return _collect_arp_entries(entries)


def parse_ip_neigh(output: str) -> List[Device]:
    """Parse ``ip neigh show`` output, skipping FAILED and INCOMPLETE rows."""
    entries = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or "lladdr" not in parts:
            continue
        state = parts[-1].upper()
        if state in IP_NEIGH_BAD_STATES:
            continue
        mac_index = parts.index("lladdr") + 1
        if mac_index >= len(parts):
            continue
        entries.append((parts[0], parts[mac_index]))
    return _collect_arp_entries(entries)


def parse_arp_macos(output: str) -> List[Device]:
    """Parse BSD-style ``arp -a -n`` output."""
    entries = []
    for line in output.splitlines():
        match = MACOS_ARP_PATTERN.search(line)
        if not match:
            continue
        ip, mac = match.groups()
        if mac == "(incomplete)" or ':' not in mac:
            continue
        entries.append((ip, mac))
    return _collect_arp_entries(entries)


def parse_arp_windows(output: str) -> List[Device]:
    """Parse Windows ``arp -a`` output.

    Interface: 192.168.1.20 --- 0x7
      Internet Address      Physical Address      Type
      192.168.1.1           aa-bb-cc-dd-ee-ff     dynamic
    """
    entries = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("Interface") or "Internet Address" in line:
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        ip, mac = parts[0], parts[1]
        if ip.startswith(NETWORK.WINDOWS_ARP_SKIP_PREFIXES) or ip.endswith(".255"):
            continue
        if '-' not in mac or len(mac) != 17:
            continue
        entries.append((ip, mac))
    return _collect_arp_entries(entries)


# ============================================================================
# Ping
# ============================================================================

def parse_ping_time(output: str) -> Optional[float]:
    """Extract the round-trip time in ms from ping output.

    Handles ``time=12.3 ms``, ``time=12.3ms`` and Windows ``time<1ms``.
    """
    for word in output.split():
        if word.startswith("time=") or word.startswith("time<"):
            value = word[5:]
            if value.endswith("ms"):
                value = value[:-2]
            try:
                return float(value)
            except ValueError:
                continue
    return None


def is_ping_success(output: str, returncode: int, windows: bool = False) -> bool:
    """Decide whether a single-echo ping reached the host.

    Windows ping exits 0 for "Destination host unreachable" replies sent by
    the local stack, so its output must contain a reply and none of the
    known failure phrases.
    """
    if not windows:
        return returncode == 0

    output_lower = output.lower()
    if any(phrase in output_lower for phrase in NETWORK.WINDOWS_PING_FAILURE_PHRASES):
        return False
    if returncode != 0:
        return False
    return "reply from" in output_lower


# ============================================================================
# Topology
# ============================================================================

def network_from_ip_mask(ip: str, mask: str) -> Optional[str]:
    """Return the CIDR network for an address and mask.

    ``mask`` may be dotted (``255.255.255.0``), hex (``0xffffff00``) or a
    prefix length (``24``).

    Example:
        >>> network_from_ip_mask("192.168.1.57", "0xffffff00")
        '192.168.1.0/24'
    """
    mask = mask.strip()
    if mask.lower().startswith("0x"):
        try:
            mask = str(ipaddress.IPv4Address(int(mask, 16)))
        except ValueError:
            return None
    try:
        return str(ipaddress.IPv4Interface(f"{ip.strip()}/{mask}").network)
    except ValueError:
        return None


def _token_after(tokens: Sequence[str], marker: str) -> Optional[str]:
    for index, token in enumerate(tokens[:-1]):
        if token == marker:
            return tokens[index + 1]
    return None


def is_virtual_interface(name: Optional[str]) -> bool:
    """True for loopback, tunnel, VPN, VM and container bridge interfaces."""
    if not name:
        return False
    name_l = name.lower()
    if name_l.startswith(NETWORK.TUNNEL_INTERFACE_PREFIXES):
        return True
    return any(p.lower() in name_l for p in NETWORK.VIRTUAL_ADAPTER_PATTERNS)


def _prefer_physical(routes: List[Tuple[Optional[str], Optional[str]]]
                     ) -> Tuple[Optional[str], Optional[str]]:
    """First route on a physical interface, else the first route at all."""
    for gateway, interface in routes:
        if not is_virtual_interface(interface):
            return gateway, interface
    return routes[0] if routes else (None, None)


def parse_linux_default_route(output: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse ``ip route show default`` into ``(gateway, interface)``.

    default via 100.64.0.1 dev tailscale0 metric 5
    default via 192.168.1.1 dev eth0 proto dhcp metric 100

    Routes through VPN or virtual interfaces lose to a physical one.
    """
    routes = []
    for line in output.splitlines():
        tokens = line.split()
        if not tokens or tokens[0] != "default":
            continue
        routes.append((_token_after(tokens, "via"), _token_after(tokens, "dev")))
    return _prefer_physical(routes)


def parse_netstat_default_routes(output: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse BSD ``netstat -rn -f inet`` default rows into ``(gateway, interface)``.

    Destination        Gateway            Flags        Netif Expire
    default            192.168.1.1        UGScg          en0
    """
    routes = []
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) < 4 or tokens[0] != "default":
            continue
        gateway = tokens[1]
        if _parse_ipv4(gateway) is None:
            continue
        routes.append((gateway, tokens[3]))
    return _prefer_physical(routes)


def parse_linux_addr(output: str) -> Optional[Tuple[str, str]]:
    """Parse ``ip addr show <iface>`` into ``(local_ip, subnet)``."""
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("inet ") or "127.0.0.1" in line:
            continue
        tokens = line.split()
        try:
            interface = ipaddress.IPv4Interface(tokens[1])
        except (IndexError, ValueError):
            continue
        return str(interface.ip), str(interface.network)
    return None


def parse_macos_route(output: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse ``route -n get default`` into ``(gateway, interface)``."""
    gateway = None
    interface = None
    for line in output.splitlines():
        key, sep, value = line.strip().partition(":")
        if not sep:
            continue
        if key == "gateway" and gateway is None:
            gateway = value.strip() or None
        elif key == "interface" and interface is None:
            interface = value.strip() or None
    return gateway, interface


def parse_ifconfig_inet(output: str) -> Optional[Tuple[str, str]]:
    """Parse ``ifconfig <iface>`` into ``(local_ip, subnet)``.

    Accepts the BSD form ``inet 192.168.1.5 netmask 0xffffff00 broadcast ...``
    and the net-tools form ``inet 192.168.1.5  netmask 255.255.255.0``.
    """
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("inet ") or "127.0.0.1" in line:
            continue
        tokens = line.split()
        mask = _token_after(tokens, "netmask")
        if len(tokens) < 2 or mask is None:
            continue
        ip = tokens[1].replace("addr:", "")
        subnet = network_from_ip_mask(ip, mask)
        if subnet:
            return ip, subnet
    return None


def _ipconfig_value(line: str) -> str:
    value = line.split(":", 1)[1] if ":" in line else ""
    value = value.strip()
    # Windows appends "(Preferred)" to active addresses
    if "(" in value:
        value = value.split("(", 1)[0].strip()
    return value


def parse_ipconfig(output: str,
                   virtual_patterns: Sequence[str] = NETWORK.VIRTUAL_ADAPTER_PATTERNS
                   ) -> Optional[NetworkInfo]:
    """Pick the LAN adapter from Windows ``ipconfig`` output.

    Prefers a non-virtual adapter with both an IPv4 address and a gateway,
    then any non-virtual adapter with an address. Link-local and loopback
    addresses are ignored.
    """
    adapters = []
    current = None
    last_key = None

    for line in output.splitlines():
        if not line.strip():
            continue
        trimmed = line.strip()

        if not line[0].isspace():
            if " adapter " in line:
                header = trimmed.rstrip(":")
                current = {
                    "name": header.split(" adapter ", 1)[1].strip(),
                    "ip": None,
                    "mask": None,
                    "gateway": None,
                    "virtual": any(p.lower() in header.lower() for p in virtual_patterns),
                }
                adapters.append(current)
            else:
                current = None
            last_key = None
            continue

        if current is None:
            continue

        if trimmed.startswith("IPv4 Address") or trimmed.startswith("IP Address"):
            ip = _ipconfig_value(trimmed)
            if _parse_ipv4(ip) and not ip.startswith(("127.", "169.254.")):
                current["ip"] = ip
            last_key = None
        elif trimmed.startswith("Subnet Mask"):
            current["mask"] = _ipconfig_value(trimmed)
            last_key = None
        elif trimmed.startswith("Default Gateway"):
            gateway = _ipconfig_value(trimmed)
            if _parse_ipv4(gateway):
                current["gateway"] = gateway
            last_key = "gateway"
        elif " : " in trimmed:
            last_key = None
        elif last_key == "gateway" and current["gateway"] is None and _parse_ipv4(trimmed):
            # Continuation line listing the IPv4 gateway after an IPv6 one
            current["gateway"] = trimmed

    candidates = [a for a in adapters if not a["virtual"] and a["ip"] and a["mask"]]
    best = next((a for a in candidates if a["gateway"]), None) or next(iter(candidates), None)
    if best is None:
        return None

    subnet = network_from_ip_mask(best["ip"], best["mask"])
    if subnet is None:
        return None
    return NetworkInfo(
        interface=best["name"],
        subnet=subnet,
        gateway_ip=best["gateway"],
        local_ip=best["ip"],
    )


def parse_powershell_topology(output: str) -> Optional[NetworkInfo]:
    """Parse the ``iface|network/prefix|gateway|ip`` line printed by the
    PowerShell route query."""
    for line in output.splitlines():
        if "|" not in line:
            continue
        parts = [p.strip() for p in line.strip().split("|")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        return NetworkInfo(
            interface=parts[0],
            subnet=parts[1],
            gateway_ip=parts[2] if len(parts) > 2 and parts[2] else None,
            local_ip=parts[3] if len(parts) > 3 and parts[3] else None,
        )
    return None


def is_usable_subnet(subnet: Optional[str]) -> bool:
    """False for empty, malformed or ``0.0.0.0``-based subnets."""
    if not subnet or subnet.startswith("0.0.0.0"):
        return False
    try:
        ipaddress.IPv4Network(subnet, strict=False)
    except ValueError:
        return False
    return True


# ============================================================================
# Hostname lookups
# ============================================================================

def _plausible_hostname(name: Optional[str], ip: str) -> Optional[str]:
    if not name:
        return None
    name = name.strip().rstrip(".")
    if not name or name == ip or _parse_ipv4(name) is not None:
        return None
    return name


def parse_getent_hosts(output: str, ip: str) -> Optional[str]:
    """``192.168.1.10    nas.lan nas`` -> ``nas.lan``"""
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) >= 2:
            return _plausible_hostname(tokens[1], ip)
    return None


def parse_host_pointer(output: str, ip: str) -> Optional[str]:
    """``10.1.168.192.in-addr.arpa domain name pointer nas.lan.`` -> ``nas.lan``"""
    for line in output.splitlines():
        if "pointer" in line:
            return _plausible_hostname(line.split("pointer", 1)[1], ip)
    return None


def parse_avahi_resolve(output: str, ip: str) -> Optional[str]:
    """``192.168.1.10\tnas.local`` -> ``nas.local``"""
    return parse_getent_hosts(output, ip)


def parse_dscacheutil(output: str, ip: str) -> Optional[str]:
    """``name: macbook.local`` line from ``dscacheutil -q host -a ip_address``."""
    for line in output.splitlines():
        key, sep, value = line.strip().partition(":")
        if sep and key.strip() == "name":
            return _plausible_hostname(value, ip)
    return None


def parse_resolve_dnsname(output: str, ip: str) -> Optional[str]:
    """Output of ``(Resolve-DnsName ... -Type PTR).NameHost``."""
    text = output.strip()
    if not text or "error" in text.lower() or ip in text:
        return None
    return _plausible_hostname(text.splitlines()[0], ip)


def parse_nbtstat(output: str, ip: str) -> Optional[str]:
    """First unique workstation name (``<00>  UNIQUE``) from ``nbtstat -A``."""
    for line in output.splitlines():
        trimmed = line.strip()
        if "<00>" in trimmed and "UNIQUE" in trimmed:
            return _plausible_hostname(trimmed.split()[0], ip)
    return None


# ============================================================================
# Privileges
# ============================================================================

WINDOWS_HIGH_INTEGRITY_MARKERS = ("S-1-16-12288", "High Mandatory Level")


def parse_whoami_groups(output: str) -> bool:
    """True when ``whoami /groups`` shows a high-integrity (elevated) token."""
    return any(marker in output for marker in WINDOWS_HIGH_INTEGRITY_MARKERS)
