"""
Pytest configuration and shared fixtures for TenPod tests.

Provides sample host enumeration output and fake sysfs trees so that no
test depends on the machine it runs on.
"""

import os
import pytest
from unittest.mock import MagicMock, patch
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============ Enumeration Output Fixtures ============

LSPCI_RTX3090 = """\
00:00.0 Host bridge [0600]: Intel Corporation 8th Gen Core Processor Host Bridge/DRAM Registers [8086:3ec2] (rev 07)
00:02.0 VGA compatible controller [0300]: Intel Corporation UHD Graphics 630 (Desktop) [8086:3e92]
00:1f.3 Audio device [0403]: Intel Corporation Cannon Lake PCH cAVS [8086:a348] (rev 10)
01:00.0 VGA compatible controller [0300]: NVIDIA Corporation GA102 [GeForce RTX 3090] [10de:2204] (rev a1)
01:00.1 Audio device [0403]: NVIDIA Corporation GA102 High Definition Audio Controller [10de:1aef] (rev a1)
02:00.0 Non-Volatile memory controller [0108]: Samsung Electronics Co Ltd NVMe SSD Controller SM981/PM981/PM983 [144d:a808]
"""

LSUSB_INDEX = """\
Bus 002 Device 001: ID 1d6b:0003 Linux Foundation 3.0 root hub
Bus 001 Device 004: ID 28de:2012 Valve Software Valve Index HMD
Bus 001 Device 003: ID 046d:c52b Logitech, Inc. Unifying Receiver
Bus 001 Device 001: ID 1d6b:0002 Linux Foundation 2.0 root hub
"""


@pytest.fixture
def lspci_output() -> str:
    """`lspci -nn` of a desktop with an iGPU and an RTX 3090."""
    return LSPCI_RTX3090


@pytest.fixture
def lsusb_output() -> str:
    """`lsusb` with a Valve Index attached."""
    return LSUSB_INDEX


@pytest.fixture
def topology():
    """GPU topology matching lspci_output."""
    from hardware_detect.gpu_scanner import GpuTopology
    from hardware_detect.pci_devices import PciAddress

    return GpuTopology(
        video=PciAddress.parse("0000:01:00.0"),
        audio=PciAddress.parse("0000:01:00.1"),
    )


# ============ Sysfs Fixtures ============

@pytest.fixture
def fake_pci_devices(tmp_path: Path):
    """
    Fake /sys/bus/pci/devices with driver symlinks.

    Returns a helper that creates a device directory bound to the given
    driver (or unbound when driver is None) and returns the devices root.
    """
    devices = tmp_path / "sys/bus/pci/devices"
    drivers = tmp_path / "sys/bus/pci/drivers"
    devices.mkdir(parents=True)
    drivers.mkdir(parents=True)

    def bind(address: str, driver=None) -> Path:
        device_dir = devices / address
        device_dir.mkdir(exist_ok=True)
        if driver:
            (drivers / driver).mkdir(exist_ok=True)
            os.symlink(f"../../../../bus/pci/drivers/{driver}", device_dir / "driver")
        return devices

    bind.root = devices
    return bind


# ============ Subprocess Fixtures ============

@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests."""
    with patch('subprocess.run') as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout=b"",
            stderr=b"",
        )
        yield mock_run


@pytest.fixture
def fake_enumerator(lspci_output, lsusb_output):
    """A HostEnumerator stand-in that returns canned output."""
    enumerator = MagicMock()
    enumerator.enumerate_pci.return_value = lspci_output
    enumerator.enumerate_usb.return_value = lsusb_output
    enumerator.read_boot_log.return_value = "[    0.000000] DMAR: IOMMU enabled\n"
    return enumerator


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "hardware: hardware-dependent tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on environment."""
    skip_hw = pytest.mark.skip(reason="Hardware tests disabled in CI")

    for item in items:
        if "hardware" in item.keywords and os.environ.get("CI"):
            item.add_marker(skip_hw)


# ============ Logging Fixtures ============

@pytest.fixture
def root_logger():
    """Restore the root logger after tests that reconfigure it."""
    import logging

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
