#!/usr/bin/env python3
"""
TenPod Hardware Detection - Readiness Checker

Checks whether this host can pass a GPU through to a VM:
- IOMMU active (VT-d/AMD-Vi), from the kernel boot log
- CPU virtualization extension (VT-x/AMD-V), from /dev/kvm
- Driver currently bound to the GPU (informational)

All checks always run. The report is advisory data; deciding whether to
abort is up to the caller.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from common.decorators import handle_errors
from common.exceptions import EnumerationError

from .gpu_scanner import PCI_DEVICE_PATH, DriverBinding, DriverKind, GpuTopology, query_driver_binding
from .host_enumerator import HostEnumerator

logger = logging.getLogger(__name__)

# Plain substring match. Kernels log "iommu: Default domain type" even with the
# IOMMU disabled, so this can report a false positive on such hosts.
_IOMMU_MARKER = re.compile(r"iommu", re.IGNORECASE)


class CheckKind(Enum):
    """The individual readiness checks."""
    IOMMU = "iommu"
    VIRTUALIZATION = "virtualization"
    DRIVER_BINDING = "driver_binding"


@dataclass(frozen=True)
class CheckFailure:
    """A blocking check that did not pass, with what to do about it."""
    kind: CheckKind
    remediation: str


@dataclass
class ReadinessReport:
    """Result of one readiness run."""

    iommu_ok: bool
    virt_ext_ok: bool
    gpu_driver: DriverBinding
    failures: List[CheckFailure] = field(default_factory=list)
    driver_status: str = ""

    @property
    def ready(self) -> bool:
        """Both blocking preconditions hold."""
        return self.iommu_ok and self.virt_ext_ok

    def to_dict(self) -> dict:
        return {
            "ready": self.ready,
            "iommu_ok": self.iommu_ok,
            "virt_ext_ok": self.virt_ext_ok,
            "gpu_driver": str(self.gpu_driver),
            "driver_status": self.driver_status,
            "failures": [
                {"check": f.kind.value, "remediation": f.remediation}
                for f in self.failures
            ],
        }


class ReadinessChecker:
    """Evaluates host preconditions for GPU passthrough."""

    CPUINFO_PATH = Path("/proc/cpuinfo")
    KVM_DEVICE_PATH = Path("/dev/kvm")
    IOMMU_GROUPS_PATH = Path("/sys/kernel/iommu_groups")

    def __init__(
        self,
        enumerator: Optional[HostEnumerator] = None,
        pci_device_path: Path = PCI_DEVICE_PATH,
    ):
        self.enumerator = enumerator or HostEnumerator()
        self.pci_device_path = pci_device_path

    def check_readiness(self, gpu: GpuTopology) -> ReadinessReport:
        """Run every check and collect the failures in check order."""
        failures = []
        vendor = self.detect_cpu_vendor()

        iommu_ok = self._check_iommu()
        if not iommu_ok:
            failures.append(CheckFailure(CheckKind.IOMMU, self._iommu_remediation(vendor)))

        virt_ext_ok = self._check_virtualization()
        if not virt_ext_ok:
            failures.append(
                CheckFailure(CheckKind.VIRTUALIZATION, self._virtualization_remediation(vendor))
            )

        gpu_driver = query_driver_binding(gpu.video, self.pci_device_path)

        return ReadinessReport(
            iommu_ok=iommu_ok,
            virt_ext_ok=virt_ext_ok,
            gpu_driver=gpu_driver,
            failures=failures,
            driver_status=self.describe_driver(gpu_driver),
        )

    def _check_iommu(self) -> bool:
        """Look for an IOMMU marker in the kernel boot log."""
        try:
            boot_log = self.enumerator.read_boot_log()
        except EnumerationError as e:
            # Unprivileged users often cannot read dmesg (dmesg_restrict)
            logger.debug(f"Boot log unavailable ({e}), checking IOMMU groups instead")
            return self._iommu_groups_present()

        return bool(_IOMMU_MARKER.search(boot_log))

    def _iommu_groups_present(self) -> bool:
        try:
            return any(True for _ in self.IOMMU_GROUPS_PATH.iterdir())
        except OSError:
            return False

    def _check_virtualization(self) -> bool:
        """The kvm device node only exists with VT-x/AMD-V enabled."""
        return self.KVM_DEVICE_PATH.exists()

    @staticmethod
    def describe_driver(binding: DriverBinding) -> str:
        """Explain what the current GPU driver means for passthrough."""
        if binding.is_vfio:
            return "bound to vfio-pci, ready"
        if binding.kind == DriverKind.UNBOUND:
            return "no driver, ready for passthrough"
        return f"currently using {binding}, will change after reboot"

    @handle_errors(OSError, default="Unknown", log_level=logging.DEBUG)
    def detect_cpu_vendor(self) -> str:
        """Return "Intel", "AMD" or "Unknown" from /proc/cpuinfo."""
        content = self.CPUINFO_PATH.read_text()
        for line in content.splitlines():
            if line.startswith("vendor_id"):
                vendor_id = line.split(":", 1)[-1].strip()
                if vendor_id == "GenuineIntel":
                    return "Intel"
                if vendor_id == "AuthenticAMD":
                    return "AMD"
                break
        return "Unknown"

    @staticmethod
    def iommu_param(vendor: str) -> str:
        """Kernel command line parameters that turn the IOMMU on."""
        if vendor == "Intel":
            return "intel_iommu=on iommu=pt"
        if vendor == "AMD":
            return "amd_iommu=on iommu=pt"
        return "intel_iommu=on (or amd_iommu=on) iommu=pt"

    def _iommu_remediation(self, vendor: str) -> str:
        return (
            "IOMMU not enabled! Enable VT-d/AMD-Vi in your BIOS, then add "
            f"'{self.iommu_param(vendor)}' to GRUB_CMDLINE_LINUX in /etc/default/grub, "
            "run 'sudo grub2-mkconfig -o /boot/grub2/grub.cfg' and reboot."
        )

    @staticmethod
    def _virtualization_remediation(vendor: str) -> str:
        if vendor == "Intel":
            setting = "VT-x (Intel Virtualization Technology)"
        elif vendor == "AMD":
            setting = "AMD-V (SVM Mode)"
        else:
            setting = "VT-x (Intel) or AMD-V/SVM (AMD)"
        return f"CPU virtualization not available! Enable {setting} in your BIOS settings."


def check_readiness(gpu: GpuTopology) -> ReadinessReport:
    """Run the readiness checks against the live host."""
    return ReadinessChecker().check_readiness(gpu)
