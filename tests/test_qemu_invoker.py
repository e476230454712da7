"""
Tests for TenPod VM Launcher - QEMU command line and process control
"""

import pytest
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common.exceptions import HypervisorLaunchError
from hardware_detect.pci_devices import PciAddress
from hardware_detect.usb_headsets import HeadsetDevice
from vm_launcher.config import LaunchSettings, VmProfile
from vm_launcher.launch_plan import (
    DeviceDescriptor,
    DisplaySink,
    MemoryBacking,
    OpticalBoot,
    PciPassthrough,
    StorageDrive,
    UsbHostPassthrough,
    build_plan,
)
from vm_launcher.qemu_invoker import QemuInvoker, build_command, descriptor_args, plan_to_args


@pytest.fixture
def settings(tmp_path):
    return LaunchSettings(
        disk_path=tmp_path / "win10.qcow2",
        iso_path=tmp_path / "win10.iso",
    )


@pytest.fixture
def plan(topology, settings):
    return build_plan(
        topology,
        [HeadsetDevice("28de", "2012", "Valve Index")],
        VmProfile(),
        disk_present=True,
        iso_present=False,
        settings=settings,
    )


class TestFragments:
    """Tests for descriptor_args()."""

    def test_gpu_video_function(self):
        d = PciPassthrough(PciAddress.parse("01:00.0"), multifunction=True)
        assert descriptor_args(d) == ["-device", "vfio-pci,host=01:00.0,multifunction=on"]

    def test_gpu_audio_function(self):
        d = PciPassthrough(PciAddress.parse("01:00.1"))
        assert descriptor_args(d) == ["-device", "vfio-pci,host=01:00.1"]

    def test_usb_host(self):
        d = UsbHostPassthrough("28de", "2012", "Valve Index")
        assert descriptor_args(d) == ["-device", "usb-host,vendorid=0x28de,productid=0x2012"]

    def test_memory_default_backing(self):
        assert descriptor_args(MemoryBacking(16)) == ["-m", "16G"]

    def test_memory_hugepages(self):
        d = MemoryBacking(16, hugepages_path=Path("/dev/hugepages"))
        assert descriptor_args(d) == ["-m", "16G", "-mem-path", "/dev/hugepages", "-mem-prealloc"]

    def test_drive(self):
        args = descriptor_args(StorageDrive(Path("/vm/disk.qcow2")))

        assert args[0] == "-drive"
        assert args[1].startswith("file=/vm/disk.qcow2,format=qcow2,if=none,id=dr1")
        assert args[2:] == ["-device", "scsi-hd,drive=dr1"]

    def test_optical_boot(self):
        assert descriptor_args(OpticalBoot(Path("/vm/win10.iso"))) == [
            "-cdrom", "/vm/win10.iso", "-boot", "d",
        ]

    def test_no_display(self):
        assert descriptor_args(DisplaySink()) == ["-vga", "none", "-nographic"]

    def test_unknown_descriptor(self):
        @dataclass(frozen=True)
        class Unmapped(DeviceDescriptor):
            pass

        with pytest.raises(TypeError):
            descriptor_args(Unmapped())


class TestBuildCommand:
    """Tests for plan_to_args() and build_command()."""

    def test_pinned_with_taskset(self, plan):
        command = build_command(plan, VmProfile())
        assert command[:4] == ["taskset", "-c", "4-7", "qemu-system-x86_64"]

    def test_fragments_in_plan_order(self, plan):
        args = plan_to_args(plan)

        video = args.index("vfio-pci,host=01:00.0,multifunction=on")
        audio = args.index("vfio-pci,host=01:00.1")
        usb_bus = args.index("qemu-xhci,id=usb-bus-0")
        headset = args.index("usb-host,vendorid=0x28de,productid=0x2012")

        assert video < audio < usb_bus < headset
        assert args[:2] == ["-name", "TenPod"]
        assert args[-3:] == ["-vga", "none", "-nographic"]

    def test_no_cdrom_without_iso(self, plan):
        assert "-cdrom" not in plan_to_args(plan)

    def test_hyperv_vendor_id(self, plan):
        args = plan_to_args(plan)
        cpu = args[args.index("-cpu") + 1]

        assert "hv_vendor_id=tenpodvr" in cpu
        assert "kvm=off" in cpu
        assert args[args.index("-smp") + 1].startswith("4,")


class TestQemuInvoker:
    """Tests for QemuInvoker with subprocess mocked out."""

    def test_launch_runs_command(self, mock_subprocess, plan, settings):
        code = QemuInvoker(settings).launch(plan, VmProfile())

        assert code == 0
        assert mock_subprocess.call_args[0][0][:4] == [
            "taskset", "-c", "4-7", "qemu-system-x86_64",
        ]

    def test_launch_returns_exit_status(self, mock_subprocess, plan, settings):
        mock_subprocess.return_value = MagicMock(returncode=1)
        assert QemuInvoker(settings).launch(plan, VmProfile()) == 1

    def test_launch_failure(self, mock_subprocess, plan, settings):
        mock_subprocess.side_effect = FileNotFoundError("taskset")

        with pytest.raises(HypervisorLaunchError) as exc_info:
            QemuInvoker(settings).launch(plan, VmProfile())

        assert exc_info.value.code == "VM_START_FAILED"
        assert exc_info.value.details["vm_name"] == "TenPod"

    def test_request_stop(self, mock_subprocess):
        assert QemuInvoker().request_stop() is True
        assert mock_subprocess.call_args[0][0] == ["pkill", "-f", "TenPod"]

    def test_request_stop_nothing_running(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=1)
        assert QemuInvoker().request_stop("OtherVM") is False

    def test_request_stop_without_pkill(self, mock_subprocess):
        mock_subprocess.side_effect = FileNotFoundError("pkill")
        assert QemuInvoker().request_stop() is False

    def test_hypervisor_installed(self, settings):
        with patch("vm_launcher.qemu_invoker.shutil.which", return_value="/usr/bin/qemu-system-x86_64") as which:
            assert QemuInvoker(settings).hypervisor_installed() is True
        which.assert_called_once_with(settings.qemu_binary)

    def test_hypervisor_missing(self, settings):
        with patch("vm_launcher.qemu_invoker.shutil.which", return_value=None):
            assert QemuInvoker(settings).hypervisor_installed() is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
