#!/usr/bin/env python3
"""
TenPod Hardware Detection - GPU Scanner Module

Finds the NVIDIA GPU to pass through and its HDMI audio sibling, and
reports which kernel driver currently claims the card.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from common.exceptions import NoGpuFoundError

from .pci_devices import PciAddress, parse_pci_listing

logger = logging.getLogger(__name__)

PCI_DEVICE_PATH = Path("/sys/bus/pci/devices")


class DriverKind(Enum):
    """Kernel driver currently bound to a PCI function."""
    UNBOUND = "unbound"
    NVIDIA = "nvidia"
    NOUVEAU = "nouveau"
    VFIO_PCI = "vfio-pci"
    OTHER = "other"


@dataclass(frozen=True)
class DriverBinding:
    """Driver binding of one device, as observed right now."""

    kind: DriverKind
    name: Optional[str] = None  # Driver name; only meaningful for OTHER

    @classmethod
    def from_driver_name(cls, name: Optional[str]) -> "DriverBinding":
        if not name:
            return cls(DriverKind.UNBOUND)
        for kind in (DriverKind.NVIDIA, DriverKind.NOUVEAU, DriverKind.VFIO_PCI):
            if name == kind.value:
                return cls(kind, name)
        return cls(DriverKind.OTHER, name)

    @property
    def is_vfio(self) -> bool:
        return self.kind == DriverKind.VFIO_PCI

    def __str__(self) -> str:
        if self.kind == DriverKind.UNBOUND:
            return "none"
        return self.name or self.kind.value


@dataclass(frozen=True)
class GpuTopology:
    """The GPU video function and, if the card has one, its audio function."""

    video: PciAddress
    audio: Optional[PciAddress] = None

    def __post_init__(self):
        if self.audio is not None and self.audio.bus_segment != self.video.bus_segment:
            raise ValueError(
                f"Audio function {self.audio} is not on the GPU bus {self.video.bus_segment}"
            )

    @property
    def multifunction(self) -> bool:
        """True when video and audio must be grouped as one physical card."""
        return self.audio is not None

    @property
    def addresses(self) -> List[PciAddress]:
        """Video first, then audio when present."""
        return [self.video] + ([self.audio] if self.audio else [])

    def to_dict(self) -> dict:
        return {
            "video": str(self.video),
            "audio": str(self.audio) if self.audio else None,
        }


def resolve_gpu(raw_pci_text: str) -> GpuTopology:
    """
    Find the NVIDIA GPU and its audio function in `lspci -nn` output.

    The first NVIDIA VGA/3D function wins; hosts with several NVIDIA cards
    are not disambiguated. The audio function is the first audio-class
    device on the same bus. A GPU without one is fine (audio is None).

    Raises:
        NoGpuFoundError: if no NVIDIA video function is listed.
    """
    devices = parse_pci_listing(raw_pci_text)

    gpus = [d for d in devices if d.is_video and d.is_nvidia]
    if not gpus:
        raise NoGpuFoundError("No NVIDIA GPU found in the PCI listing")

    video = gpus[0]
    for ignored in gpus[1:]:
        logger.warning(f"Ignoring additional NVIDIA GPU at {ignored.address}")
    logger.info(f"Found GPU at {video.address}: {video.description}")

    audio = None
    for device in devices:
        if device.is_audio and device.address.bus_segment == video.address.bus_segment:
            audio = device.address
            logger.info(f"Found GPU audio at {audio}")
            break
    else:
        logger.warning("GPU audio device not found (some GPUs don't have it)")

    return GpuTopology(video=video.address, audio=audio)


def vfio_ids_for(raw_pci_text: str, topology: GpuTopology) -> List[str]:
    """Return vendor:device ids for the topology's functions, video first."""
    by_address = {d.address: d for d in parse_pci_listing(raw_pci_text)}
    ids = []
    for address in topology.addresses:
        device = by_address.get(address)
        if device is None or device.vfio_id is None:
            logger.warning(f"No vendor:device id listed for {address}")
            continue
        if device.vfio_id not in ids:
            ids.append(device.vfio_id)
    return ids


def query_driver_binding(
    pci_address: PciAddress,
    device_path: Path = PCI_DEVICE_PATH,
) -> DriverBinding:
    """
    Read the current driver of a PCI function from sysfs.

    Looked up on every call. A missing driver link, or a device directory
    that vanished underneath us, both mean UNBOUND.
    """
    driver_link = device_path / str(pci_address) / "driver"
    try:
        target = os.readlink(driver_link)
    except OSError:
        return DriverBinding(DriverKind.UNBOUND)
    return DriverBinding.from_driver_name(os.path.basename(target))
