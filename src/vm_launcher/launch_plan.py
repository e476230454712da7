"""
Launch Plan - the ordered device list that describes one VM start.

`build_plan` is a pure function: the same topology, headsets, profile and
presence flags always give an equal plan. The order of descriptors
matters to the hypervisor (multifunction grouping, controllers before the
devices that attach to them, boot device selection) and is kept exactly
as documented on `build_plan`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Type, TypeVar

from hardware_detect.gpu_scanner import GpuTopology
from hardware_detect.pci_devices import PciAddress
from hardware_detect.usb_headsets import HeadsetDevice

from .config import LaunchSettings, VmProfile


@dataclass(frozen=True)
class DeviceDescriptor:
    """Base class for one entry of a launch plan."""


@dataclass(frozen=True)
class MachineType(DeviceDescriptor):
    name: str
    machine: str = "q35"
    accelerator: str = "kvm"
    kernel_irqchip: bool = True


@dataclass(frozen=True)
class CpuTopology(DeviceDescriptor):
    cores: int
    hv_vendor_id: str
    sockets: int = 1
    threads: int = 1


@dataclass(frozen=True)
class ClockSource(DeviceDescriptor):
    """Guest clock policy for stable frame pacing."""
    rtc_base: str = "localtime"
    drift_fix: str = "slew"
    pit_lost_tick_policy: str = "delay"
    hpet: bool = False


@dataclass(frozen=True)
class MemoryBacking(DeviceDescriptor):
    size_gb: int
    hugepages_path: Optional[Path] = None  # None means default backing

    @property
    def hugepages(self) -> bool:
        return self.hugepages_path is not None


@dataclass(frozen=True)
class PciPassthrough(DeviceDescriptor):
    address: PciAddress
    multifunction: bool = False


@dataclass(frozen=True)
class StorageController(DeviceDescriptor):
    controller_id: str = "scsi0"


@dataclass(frozen=True)
class StorageDrive(DeviceDescriptor):
    path: Path
    disk_format: str = "qcow2"
    drive_id: str = "dr1"


@dataclass(frozen=True)
class OpticalBoot(DeviceDescriptor):
    """Installer image attached as CD-ROM; also makes it the first boot device."""
    path: Path
    boot_first: bool = True


@dataclass(frozen=True)
class UsbController(DeviceDescriptor):
    bus_id: str = "usb-bus-0"


@dataclass(frozen=True)
class UsbHostPassthrough(DeviceDescriptor):
    vendor_id: str
    product_id: str
    display_name: str = ""


@dataclass(frozen=True)
class NetworkAdapter(DeviceDescriptor):
    netdev_id: str = "net0"


@dataclass(frozen=True)
class DisplaySink(DeviceDescriptor):
    """No emulated display; the physical GPU output is the only screen."""
    virtual_display: bool = False


D = TypeVar("D", bound=DeviceDescriptor)


@dataclass(frozen=True)
class LaunchPlan:
    """Immutable, ordered hypervisor device list."""

    descriptors: Tuple[DeviceDescriptor, ...]

    def __iter__(self):
        return iter(self.descriptors)

    def __len__(self) -> int:
        return len(self.descriptors)

    def of_type(self, kind: Type[D]) -> Tuple[D, ...]:
        """All descriptors of one variant, in plan order."""
        return tuple(d for d in self.descriptors if isinstance(d, kind))

    @property
    def boots_from_optical(self) -> bool:
        return any(d.boot_first for d in self.of_type(OpticalBoot))


def build_plan(
    topology: GpuTopology,
    headsets: Sequence[HeadsetDevice],
    profile: VmProfile,
    disk_present: bool,
    iso_present: bool,
    *,
    hugepages_available: bool = False,
    settings: Optional[LaunchSettings] = None,
) -> LaunchPlan:
    """
    Compile hardware and profile into an ordered launch plan.

    Order:
        1. machine, CPU topology, clock policy
        2. memory backing (hugepages when available)
        3. GPU video function, multifunction when an audio sibling exists
        4. GPU audio function, if any
        5. storage controller, then the system disk (if present)
        6. installer CD-ROM and boot-from-CD, only with an installer image
        7. USB controller, always, so late-plugged headsets can attach
        8. one USB passthrough per headset, in detection order
        9. network adapter
        10. no virtual display

    Host state (disk, ISO, hugepage mount) comes in as arguments so this
    function never touches the filesystem and cannot fail.
    """
    settings = settings or LaunchSettings()

    descriptors = [
        MachineType(name=settings.vm_name),
        CpuTopology(cores=profile.vcpus, hv_vendor_id=settings.hv_vendor_id),
        ClockSource(),
        MemoryBacking(
            size_gb=profile.memory_gb,
            hugepages_path=settings.hugepages_path if hugepages_available else None,
        ),
        PciPassthrough(topology.video, multifunction=topology.multifunction),
    ]

    if topology.audio is not None:
        descriptors.append(PciPassthrough(topology.audio))

    descriptors.append(StorageController())
    if disk_present:
        descriptors.append(StorageDrive(settings.disk_path, disk_format=settings.disk_format))

    if iso_present:
        descriptors.append(OpticalBoot(settings.iso_path))

    descriptors.append(UsbController())
    descriptors.extend(
        UsbHostPassthrough(h.vendor_id, h.product_id, h.display_name) for h in headsets
    )

    descriptors.append(NetworkAdapter())
    descriptors.append(DisplaySink())

    return LaunchPlan(tuple(descriptors))
