#!/usr/bin/env python3
"""
TenPod Hardware Detection - Provisioning Plan Generator

Works out the one-time host setup that GPU passthrough needs:
- vfio-pci device binding and driver soft dependencies (modprobe.d)
- Kernel command line parameters
- Hugepage reservation sized for the VM
- User groups, packages, services and the VM disk image

Nothing here touches the system. The plan is handed to whoever performs
the privileged steps, and rendered for the operator as a checklist.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from vm_launcher.config import LaunchSettings, VmProfile

from .gpu_scanner import GpuTopology
from .readiness import ReadinessChecker
from .templates import TemplateLoader

logger = logging.getLogger(__name__)

HUGEPAGE_SIZE_MB = 2


@dataclass
class ProvisioningPlan:
    """Everything the provisioning step has to do, as data."""

    topology: GpuTopology
    vfio_ids: List[str]
    kernel_params: str
    hugepages: int
    packages: List[str]
    user_groups: List[str]
    services: List[str]
    disk_path: str
    disk_size: str
    disk_format: str
    iso_path: str
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if the plan is complete enough to act on."""
        return not self.errors and bool(self.vfio_ids)

    @property
    def vfio_options(self) -> List[str]:
        """Lines for /etc/modprobe.d/vfio.conf."""
        return [
            f"options vfio-pci ids={','.join(self.vfio_ids)}",
            "blacklist nvidia",
            "blacklist nouveau",
        ]

    @property
    def softdeps(self) -> List[str]:
        """Lines for /etc/modprobe.d/vfio-priority.conf."""
        return [
            "softdep nvidia pre: vfio-pci",
            "softdep nouveau pre: vfio-pci",
        ]

    @property
    def sysctl(self) -> str:
        return f"vm.nr_hugepages = {self.hugepages}"

    def to_dict(self) -> dict:
        return {
            "gpu": self.topology.to_dict(),
            "vfio_ids": self.vfio_ids,
            "vfio_options": self.vfio_options,
            "softdeps": self.softdeps,
            "kernel_params": self.kernel_params,
            "hugepages": self.hugepages,
            "packages": self.packages,
            "user_groups": self.user_groups,
            "services": self.services,
            "disk": {"path": self.disk_path, "size": self.disk_size, "format": self.disk_format},
            "iso_path": self.iso_path,
            "errors": self.errors,
        }


class ConfigGenerator:
    """Builds and renders provisioning plans."""

    PACKAGES = [
        "qemu-kvm", "libvirt", "virt-manager", "bridge-utils",
        "libvirt-daemon-config-network", "virt-install",
    ]
    SERVICES = ["libvirtd"]
    TEMPLATE_NAME = "provisioning_plan.txt.j2"

    def __init__(self, template_loader: Optional[TemplateLoader] = None):
        self.template_loader = template_loader or TemplateLoader()

    @staticmethod
    def hugepages_for(memory_gb: int) -> int:
        """Number of 2 MiB hugepages that back the whole VM memory."""
        return (memory_gb * 1024) // HUGEPAGE_SIZE_MB

    def generate(
        self,
        topology: GpuTopology,
        vfio_ids: List[str],
        profile: VmProfile,
        settings: Optional[LaunchSettings] = None,
        cpu_vendor: str = "Unknown",
    ) -> ProvisioningPlan:
        """Compute the provisioning plan for one GPU and VM profile."""
        settings = settings or LaunchSettings()
        errors = []

        if not vfio_ids:
            errors.append("Could not determine GPU hardware IDs")

        plan = ProvisioningPlan(
            topology=topology,
            vfio_ids=list(vfio_ids),
            kernel_params=ReadinessChecker.iommu_param(cpu_vendor),
            hugepages=self.hugepages_for(profile.memory_gb),
            packages=list(self.PACKAGES),
            user_groups=list(settings.extra_groups),
            services=list(self.SERVICES),
            disk_path=str(settings.disk_path),
            disk_size=settings.disk_size,
            disk_format=settings.disk_format,
            iso_path=str(settings.iso_path),
            errors=errors,
        )
        logger.debug(f"Provisioning plan: {plan.to_dict()}")
        return plan

    def render(self, plan: ProvisioningPlan) -> str:
        """Render the plan as operator instructions."""
        return self.template_loader.render(self.TEMPLATE_NAME, plan=plan)
