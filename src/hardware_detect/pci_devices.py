#!/usr/bin/env python3
"""
TenPod Hardware Detection - PCI Listing Parser

Turns `lspci -nn` text into typed records. Lines that do not look like a
device entry are skipped so a truncated or unusual listing never aborts
the scan.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(
    r"^(?:(?P<domain>[0-9a-fA-F]{4}):)?"
    r"(?P<bus>[0-9a-fA-F]{2}):(?P<device>[0-9a-fA-F]{2})\.(?P<function>[0-7])$"
)

# "01:00.0 VGA compatible controller [0300]: NVIDIA Corporation GA102 [10de:2204] (rev a1)"
_LINE_RE = re.compile(
    r"^(?P<address>\S+)\s+"
    r"(?P<class_name>[^\[:]+?)\s*"
    r"(?:\[(?P<class_code>[0-9a-fA-F]{4})\])?:\s*"
    r"(?P<description>.*)$"
)
_IDS_RE = re.compile(r"\[([0-9a-fA-F]{4}):([0-9a-fA-F]{4})\]")


@dataclass(frozen=True)
class PciAddress:
    """A PCI function address, always in `0000:bb:dd.f` form."""

    domain: str
    bus: str
    device: str
    function: str

    @classmethod
    def parse(cls, text: str) -> "PciAddress":
        """Parse `bb:dd.f` or `dddd:bb:dd.f`; the domain defaults to 0000."""
        match = _ADDRESS_RE.match(text.strip())
        if not match:
            raise ValueError(f"Not a PCI address: {text!r}")
        return cls(
            domain=(match.group("domain") or "0000").lower(),
            bus=match.group("bus").lower(),
            device=match.group("device").lower(),
            function=match.group("function"),
        )

    @property
    def bus_segment(self) -> str:
        """Domain and bus, e.g. `0000:01`."""
        return f"{self.domain}:{self.bus}"

    @property
    def short(self) -> str:
        """Address without the domain, as QEMU's `host=` expects."""
        return f"{self.bus}:{self.device}.{self.function}"

    def __str__(self) -> str:
        return f"{self.domain}:{self.short}"


@dataclass(frozen=True)
class PciDevice:
    """One device line from `lspci -nn`."""

    address: PciAddress
    class_code: str      # e.g. "0300"; empty when lspci ran without -nn
    class_name: str      # e.g. "VGA compatible controller"
    vendor_id: str       # e.g. "10de"; empty when not listed
    device_id: str       # e.g. "2204"
    description: str     # Everything after the class, ids included

    @property
    def is_video(self) -> bool:
        """VGA or 3D controller."""
        if self.class_code:
            return self.class_code in ("0300", "0302")
        return "VGA" in self.class_name or "3D" in self.class_name

    @property
    def is_audio(self) -> bool:
        """Multimedia audio function (HDMI/DP audio on a GPU)."""
        if self.class_code:
            return self.class_code.startswith("040")
        return "Audio" in self.class_name

    @property
    def is_nvidia(self) -> bool:
        if self.vendor_id:
            return self.vendor_id == "10de"
        return "NVIDIA" in self.description

    @property
    def vfio_id(self) -> Optional[str]:
        """Return the vendor:device ID string for VFIO binding."""
        if not self.vendor_id or not self.device_id:
            return None
        return f"{self.vendor_id}:{self.device_id}"


def parse_pci_line(line: str) -> Optional[PciDevice]:
    """Parse a single listing line, or return None if it is not a device entry."""
    match = _LINE_RE.match(line.strip())
    if not match:
        return None

    try:
        address = PciAddress.parse(match.group("address"))
    except ValueError:
        return None

    description = match.group("description").strip()

    # Device names can carry their own brackets ("GA104 [GeForce RTX 3070]"),
    # the vendor:device pair is the last one on the line.
    vendor_id = device_id = ""
    ids = _IDS_RE.findall(description)
    if ids:
        vendor_id, device_id = (part.lower() for part in ids[-1])

    return PciDevice(
        address=address,
        class_code=(match.group("class_code") or "").lower(),
        class_name=match.group("class_name").strip(),
        vendor_id=vendor_id,
        device_id=device_id,
        description=description,
    )


def parse_pci_listing(text: str) -> List[PciDevice]:
    """Parse a full listing, skipping lines that are not device entries."""
    devices = []
    for line in text.splitlines():
        if not line.strip():
            continue
        device = parse_pci_line(line)
        if device is None:
            logger.debug(f"Skipping unparseable PCI line: {line!r}")
            continue
        devices.append(device)
    return devices
