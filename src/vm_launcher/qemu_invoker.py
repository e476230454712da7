"""
QEMU Invoker - turns a launch plan into a QEMU command line and runs it.

Each descriptor variant maps to exactly one argument fragment, and the
fragments are emitted in plan order.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Callable, Dict, List, Optional

from common.decorators import handle_errors
from common.exceptions import HypervisorLaunchError

from .config import LaunchSettings, VmProfile
from .launch_plan import (
    ClockSource,
    CpuTopology,
    DeviceDescriptor,
    DisplaySink,
    LaunchPlan,
    MachineType,
    MemoryBacking,
    NetworkAdapter,
    OpticalBoot,
    PciPassthrough,
    StorageController,
    StorageDrive,
    UsbController,
    UsbHostPassthrough,
)

logger = logging.getLogger(__name__)

# Hyper-V enlightenments for Windows guest latency
_HYPERV_FLAGS = "hv_time,hv_relaxed,hv_vapic,hv_spinlocks=0x1fff"


def _machine_args(d: MachineType) -> List[str]:
    irqchip = "on" if d.kernel_irqchip else "off"
    return [
        "-name", d.name,
        "-machine", f"type={d.machine},accel={d.accelerator},kernel_irqchip={irqchip}",
        "-enable-kvm",
    ]


def _cpu_args(d: CpuTopology) -> List[str]:
    return [
        "-cpu", f"host,{_HYPERV_FLAGS},hv_vendor_id={d.hv_vendor_id},kvm=off,+invtsc",
        "-smp", f"{d.cores * d.sockets * d.threads},sockets={d.sockets},"
                f"cores={d.cores},threads={d.threads}",
    ]


def _clock_args(d: ClockSource) -> List[str]:
    args = [
        "-rtc", f"base={d.rtc_base},clock=host,driftfix={d.drift_fix}",
        "-global", f"kvm-pit.lost_tick_policy={d.pit_lost_tick_policy}",
    ]
    if not d.hpet:
        args.append("-no-hpet")
    return args


def _memory_args(d: MemoryBacking) -> List[str]:
    args = ["-m", f"{d.size_gb}G"]
    if d.hugepages:
        args.extend(["-mem-path", str(d.hugepages_path), "-mem-prealloc"])
    return args


def _pci_args(d: PciPassthrough) -> List[str]:
    device = f"vfio-pci,host={d.address.short}"
    if d.multifunction:
        device += ",multifunction=on"
    return ["-device", device]


def _controller_args(d: StorageController) -> List[str]:
    return ["-device", f"virtio-scsi-pci,id={d.controller_id}"]


def _drive_args(d: StorageDrive) -> List[str]:
    return [
        "-drive", f"file={d.path},format={d.disk_format},if=none,id={d.drive_id},cache=none,aio=native",
        "-device", f"scsi-hd,drive={d.drive_id}",
    ]


def _optical_args(d: OpticalBoot) -> List[str]:
    args = ["-cdrom", str(d.path)]
    if d.boot_first:
        args.extend(["-boot", "d"])
    return args


def _usb_controller_args(d: UsbController) -> List[str]:
    return ["-device", f"qemu-xhci,id={d.bus_id}", "-usb"]


def _usb_host_args(d: UsbHostPassthrough) -> List[str]:
    return ["-device", f"usb-host,vendorid=0x{d.vendor_id},productid=0x{d.product_id}"]


def _network_args(d: NetworkAdapter) -> List[str]:
    return [
        "-netdev", f"user,id={d.netdev_id}",
        "-device", f"virtio-net-pci,netdev={d.netdev_id}",
    ]


def _display_args(d: DisplaySink) -> List[str]:
    if d.virtual_display:
        return ["-vga", "std"]
    return ["-vga", "none", "-nographic"]


_FRAGMENTS: Dict[type, Callable[..., List[str]]] = {
    MachineType: _machine_args,
    CpuTopology: _cpu_args,
    ClockSource: _clock_args,
    MemoryBacking: _memory_args,
    PciPassthrough: _pci_args,
    StorageController: _controller_args,
    StorageDrive: _drive_args,
    OpticalBoot: _optical_args,
    UsbController: _usb_controller_args,
    UsbHostPassthrough: _usb_host_args,
    NetworkAdapter: _network_args,
    DisplaySink: _display_args,
}


def descriptor_args(descriptor: DeviceDescriptor) -> List[str]:
    """The argument fragment for a single descriptor."""
    builder = _FRAGMENTS.get(type(descriptor))
    if builder is None:
        raise TypeError(f"No QEMU mapping for {type(descriptor).__name__}")
    return builder(descriptor)


def plan_to_args(plan: LaunchPlan) -> List[str]:
    """Concatenate descriptor fragments in plan order."""
    args: List[str] = []
    for descriptor in plan:
        args.extend(descriptor_args(descriptor))
    return args


def build_command(
    plan: LaunchPlan,
    profile: VmProfile,
    settings: Optional[LaunchSettings] = None,
) -> List[str]:
    """Full argv: QEMU pinned to the profile's cores with taskset."""
    settings = settings or LaunchSettings()
    return ["taskset", "-c", profile.cpulist, settings.qemu_binary] + plan_to_args(plan)


class QemuInvoker:
    """Runs QEMU in the foreground and stops it by name."""

    def __init__(self, settings: Optional[LaunchSettings] = None):
        self.settings = settings or LaunchSettings()

    def hypervisor_installed(self) -> bool:
        """Whether the QEMU binary is on PATH. Informational, never blocks a start."""
        return shutil.which(self.settings.qemu_binary) is not None

    def launch(self, plan: LaunchPlan, profile: VmProfile) -> int:
        """
        Run the VM until it exits.

        Returns:
            The hypervisor's exit status.

        Raises:
            HypervisorLaunchError: if the process cannot be started.
        """
        command = build_command(plan, profile, self.settings)
        logger.info(f"Starting VM: {' '.join(command)}")

        try:
            result = subprocess.run(command)
        except OSError as e:
            raise HypervisorLaunchError(self.settings.vm_name, str(e), cause=e) from e

        if result.returncode != 0:
            logger.warning(f"VM exited with status {result.returncode}")
        return result.returncode

    @handle_errors(OSError, default=False, log_level=logging.WARNING,
                   message="Could not request VM stop")
    def request_stop(self, name: Optional[str] = None) -> bool:
        """
        Ask every process whose command line contains the VM name to exit.

        Best effort: returns True if pkill matched something.
        """
        name = name or self.settings.vm_name
        result = subprocess.run(["pkill", "-f", name], capture_output=True)
        if result.returncode != 0:
            logger.info(f"No running process matched '{name}'")
        return result.returncode == 0
