"""TenPod Hardware Detection Module.

This module provides detection of:
- The NVIDIA GPU and its HDMI audio function (lspci)
- Attached VR headsets (lsusb)
- Host readiness for passthrough (IOMMU, VT-x/AMD-V, GPU driver)
- The one-time provisioning plan for VFIO and hugepages
"""

from .host_enumerator import HostEnumerator
from .pci_devices import PciAddress, PciDevice, parse_pci_listing
from .gpu_scanner import (
    DriverBinding, DriverKind, GpuTopology, query_driver_binding, resolve_gpu, vfio_ids_for,
)
from .usb_headsets import HEADSET_SIGNATURES, HeadsetDevice, HeadsetSignature, resolve_headsets
from .readiness import CheckFailure, CheckKind, ReadinessChecker, ReadinessReport, check_readiness
from .config_generator import ConfigGenerator, ProvisioningPlan

__all__ = [
    # Host Enumerator
    "HostEnumerator",
    # PCI
    "PciAddress",
    "PciDevice",
    "parse_pci_listing",
    # GPU Scanner
    "DriverBinding",
    "DriverKind",
    "GpuTopology",
    "query_driver_binding",
    "resolve_gpu",
    "vfio_ids_for",
    # Headsets
    "HEADSET_SIGNATURES",
    "HeadsetDevice",
    "HeadsetSignature",
    "resolve_headsets",
    # Readiness
    "CheckFailure",
    "CheckKind",
    "ReadinessChecker",
    "ReadinessReport",
    "check_readiness",
    # Provisioning
    "ConfigGenerator",
    "ProvisioningPlan",
]

__version__ = "0.1.0"
