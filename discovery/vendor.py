"""MAC vendor lookup and device-type classification.

Vendors come from an IEEE OUI database already present on the host
(arp-scan's ``ieee-oui.txt``, Wireshark's ``manuf`` or nmap's
``nmap-mac-prefixes``). Device types are inferred from the vendor name
with ordered keyword rules; the first matching rule wins.
"""
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import get_logger
from discovery.models import Device, DeviceType

logger = get_logger(__name__)

HEX_DIGITS = frozenset("0123456789ABCDEF")


def normalize_mac(mac_address: Optional[str]) -> Optional[str]:
    """Normalize a MAC address to ``XX:XX:XX:XX:XX:XX``.

    Accepts colon, dash and Cisco dot notation. Partial addresses of at
    least three octets are padded with trailing zeros so the OUI prefix
    stays in place; longer input is truncated to six octets.

    Returns:
        The canonical MAC, or None if the input is not a hex MAC.

    Example:
        >>> normalize_mac("aabb.ccdd.eeff")
        'AA:BB:CC:DD:EE:FF'
        >>> normalize_mac("zz:11:22") is None
        True
    """
    if not mac_address:
        return None

    cleaned = (
        mac_address.strip().upper().replace(":", "").replace("-", "").replace(".", "")
    )
    if len(cleaned) < 6 or not set(cleaned) <= HEX_DIGITS:
        return None

    cleaned = cleaned[:12].ljust(12, "0")
    return ":".join(cleaned[i:i + 2] for i in range(0, 12, 2))


# ============================================================================
# Vendor to Device Type Rules
# ============================================================================

# Evaluated top to bottom; earlier categories take precedence over later
# ones (a hypervisor vendor is a service even if it also builds PCs).
CLASSIFICATION_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("firewalla", "pfsense", "opnsense", "sophos", "watchguard", "sonicwall",
      "barracuda", "checkpoint", "forcepoint", "untangle"),
     DeviceType.FIREWALL),
    (("proxmox", "vmware", "xensource", "parallels", "virtualbox", "qemu",
      "docker", "kubernetes"),
     DeviceType.SERVICE),
    (("cisco", "juniper", "arista", "ubiquiti", "netgear", "tp-link", "linksys",
      "d-link", "mikrotik", "aruba", "ruckus", "fortinet", "palo alto", "zyxel",
      "draytek", "meraki", "cambium", "routerboard"),
     DeviceType.NETWORK_DEVICE),
    (("supermicro", "dell emc", "hpe", "hewlett packard enterprise", "ibm",
      "oracle", "fujitsu", "inspur"),
     DeviceType.SERVER),
    (("apple",),
     DeviceType.APPLE),
    (("synology", "qnap", "western digital", "buffalo", "drobo",
      "netgear readynas", "ugreen", "asustor", "terramaster"),
     DeviceType.NAS),
    (("sonos", "philips", "signify", "ring", "nest", "ecobee", "wyze", "tuya",
      "shelly", "espressif", "amazon", "google", "roku", "wemo", "lifx",
      "nanoleaf"),
     DeviceType.IOT),
    (("hewlett packard", "hp inc", "canon", "epson", "brother", "xerox",
      "lexmark", "ricoh", "konica", "kyocera"),
     DeviceType.PRINTER),
    (("sony", "nintendo", "microsoft", "valve"),
     DeviceType.GAMING),
    (("samsung", "huawei", "xiaomi", "oneplus", "oppo", "vivo", "motorola",
      "lg electronics", "realme", "honor"),
     DeviceType.MOBILE),
    (("dell", "lenovo", "acer", "asus", "asustek", "intel", "realtek",
      "gigabyte", "msi", "hp ", "toshiba"),
     DeviceType.COMPUTER),
)

# Locally administered or vendor-reserved prefixes used by hypervisors
VM_MAC_PREFIXES: Dict[str, str] = {
    "0242AC": "Docker",
    "005056": "VMware",
    "000C29": "VMware",
    "000569": "VMware",
    "00163E": "Xen",
    "00155D": "Hyper-V",
    "001C42": "Parallels",
    "525400": "QEMU/KVM",
    "080027": "VirtualBox",
    "BC2411": "Proxmox",
}

VIRTUAL_MACHINE_VENDOR = "Virtual Machine"


def infer_device_type(vendor: Optional[str]) -> Optional[str]:
    """Infer a device-type tag from a vendor name, or None if no rule matches."""
    if not vendor:
        return None
    vendor_lower = vendor.lower()
    for keywords, device_type in CLASSIFICATION_RULES:
        if any(keyword in vendor_lower for keyword in keywords):
            return device_type
    return None


def infer_device_type_from_mac(mac_address: Optional[str]) -> Optional[str]:
    """Tag MACs from well-known hypervisor and container prefixes as services."""
    normalized = normalize_mac(mac_address)
    if normalized is None:
        return None
    if normalized.replace(":", "")[:6] in VM_MAC_PREFIXES:
        return DeviceType.SERVICE
    return None


# ============================================================================
# OUI Vendor Database
# ============================================================================

def parse_oui_line(line: str) -> Optional[Tuple[str, str]]:
    """Parse one OUI database line into ``(hex_prefix, vendor)``.

    Handles the three formats we load:
        ``000393\\tApple, Inc.``                  (arp-scan ieee-oui.txt)
        ``00:03:93\\tApple\\tApple, Inc.``         (Wireshark manuf)
        ``00:1B:C5:00:00:00/36\\tConverg\\t...``   (manuf sub-assignments)
        ``000393 Apple``                          (nmap-mac-prefixes)
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    if '\t' in line:
        parts = [p.strip() for p in line.split('\t') if p.strip()]
    else:
        parts = line.split(None, 1)
    if len(parts) < 2:
        return None

    raw_prefix = parts[0]
    bits = None
    if '/' in raw_prefix:
        raw_prefix, _, mask = raw_prefix.partition('/')
        try:
            bits = int(mask)
        except ValueError:
            return None

    prefix = raw_prefix.upper().replace(':', '').replace('-', '').replace('.', '')
    if bits is not None:
        prefix = prefix[:bits // 4]
    if len(prefix) < 6 or not set(prefix) <= HEX_DIGITS:
        return None

    # Wireshark lists a short name then the full organization name
    vendor = parts[2] if len(parts) > 2 else parts[1]
    return prefix, vendor.strip()


class OUIDatabase:
    """IEEE OUI database for MAC vendor lookup.

    Loads the first database file found on disk the first time a lookup is
    made. Tests and callers with their own data can pass ``vendors``
    directly.
    """

    OUI_PATHS = [
        "/usr/share/arp-scan/ieee-oui.txt",
        "/usr/local/share/arp-scan/ieee-oui.txt",
        "/opt/homebrew/share/arp-scan/ieee-oui.txt",
        "/usr/share/wireshark/manuf",
        "/usr/local/share/wireshark/manuf",
        "/opt/homebrew/share/wireshark/manuf",
        "/usr/share/nmap/nmap-mac-prefixes",
        "/usr/local/share/nmap/nmap-mac-prefixes",
        "/opt/homebrew/share/nmap/nmap-mac-prefixes",
        "C:\\Program Files\\Wireshark\\manuf",
        "C:\\Program Files (x86)\\Nmap\\nmap-mac-prefixes",
    ]

    def __init__(self, vendors: Optional[Dict[str, str]] = None,
                 paths: Optional[Sequence[str]] = None):
        self._vendors: Dict[str, str] = {}
        self._prefix_lengths: List[int] = []
        self._paths = list(paths) if paths is not None else list(self.OUI_PATHS)
        self._loaded = False
        self.source: Optional[str] = None
        if vendors is not None:
            self._index(vendors.items())
            self.source = "memory"
            self._loaded = True

    def __len__(self) -> int:
        self._load()
        return len(self._vendors)

    def _index(self, entries: Iterable[Tuple[str, str]]) -> None:
        for prefix, vendor in entries:
            key = prefix.upper().replace(':', '').replace('-', '').replace('.', '')
            # Keep the first entry for a prefix; files list the registry owner first
            self._vendors.setdefault(key, vendor)
        self._prefix_lengths = sorted({len(k) for k in self._vendors}, reverse=True)

    def _load(self) -> None:
        """Load OUI database from the first readable file."""
        if self._loaded:
            return
        self._loaded = True

        for path in self._paths:
            if not Path(path).is_file():
                continue
            try:
                with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                    self._index(entry for entry in map(parse_oui_line, f) if entry)
            except OSError as e:
                logger.debug(f"Failed to load OUI from {path}: {e}")
                continue
            if self._vendors:
                self.source = path
                logger.info(f"Loaded {len(self._vendors)} OUI entries from {path}")
                return

        logger.warning(
            "No OUI database found (install arp-scan, wireshark or nmap for vendor detection)"
        )

    def lookup(self, mac_address: str) -> Optional[str]:
        """Look up the vendor for a MAC address, longest prefix first."""
        self._load()
        normalized = normalize_mac(mac_address)
        if normalized is None:
            return None
        mac_clean = normalized.replace(':', '')

        for length in self._prefix_lengths:
            vendor = self._vendors.get(mac_clean[:length])
            if vendor:
                return vendor
        return None


_global_oui_db: Optional[OUIDatabase] = None


def get_oui_database() -> OUIDatabase:
    """Get or create the shared OUI database."""
    global _global_oui_db
    if _global_oui_db is None:
        _global_oui_db = OUIDatabase()
    return _global_oui_db


def set_oui_database(database: Optional[OUIDatabase]) -> None:
    """Replace the shared OUI database (e.g. with a user-supplied file)."""
    global _global_oui_db
    _global_oui_db = database


# ============================================================================
# Classification
# ============================================================================

def classify(mac_address: Optional[str],
             oui_db: Optional[OUIDatabase] = None) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(vendor, device_type)`` for a MAC address.

    Invalid MACs yield ``(None, None)``. When the vendor is unknown but the
    MAC belongs to a hypervisor prefix, the vendor is reported as
    "Virtual Machine".
    """
    normalized = normalize_mac(mac_address)
    if normalized is None:
        return None, None

    db = oui_db if oui_db is not None else get_oui_database()
    vendor = db.lookup(normalized)
    if vendor:
        return vendor, infer_device_type(vendor) or infer_device_type_from_mac(normalized)

    vm_type = infer_device_type_from_mac(normalized)
    if vm_type:
        return VIRTUAL_MACHINE_VENDOR, vm_type
    return None, None


def enrich_devices(devices: List[Device], oui_db: Optional[OUIDatabase] = None) -> int:
    """Fill in vendor and device type for devices with a MAC.

    Devices that already carry a vendor are left alone.

    Returns:
        Number of devices that received a vendor.
    """
    lookups = 0
    found = 0
    for device in devices:
        if device.vendor or not device.mac:
            continue
        lookups += 1
        vendor, device_type = classify(device.mac, oui_db)
        if vendor is None:
            logger.debug(f"OUI: {device.ip} ({device.mac}) -> not found")
            continue
        found += 1
        device.vendor = vendor
        if device_type is not None:
            device.device_type = device_type
        logger.debug(f"OUI: {device.ip} ({device.mac}) -> {vendor} (type: {device_type})")

    if lookups:
        logger.info(
            f"OUI enrichment complete: looked up {lookups} MACs, found {found} vendors "
            f"({found / lookups * 100:.0f}%)"
        )
    return found
