"""
Tests for the tenpod and tenpod-detect command line interfaces.

Host enumeration, readiness and process control are mocked so the
commands run the same on any machine.
"""

import json
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common.exceptions import EnumerationError, ToolUnavailableError
from hardware_detect import cli as detect_cli
from hardware_detect.gpu_scanner import DriverBinding
from hardware_detect.readiness import CheckFailure, CheckKind, ReadinessReport
from vm_launcher import cli as launcher_cli
from vm_launcher.launch_plan import UsbHostPassthrough


@pytest.fixture(autouse=True)
def _restore_logging(root_logger):
    """main() reconfigures the root logger."""
    yield


@pytest.fixture
def ready_report():
    return ReadinessReport(
        iommu_ok=True,
        virt_ext_ok=True,
        gpu_driver=DriverBinding.from_driver_name("vfio-pci"),
        driver_status="bound to vfio-pci, ready",
    )


@pytest.fixture
def blocked_report():
    return ReadinessReport(
        iommu_ok=False,
        virt_ext_ok=True,
        gpu_driver=DriverBinding.from_driver_name("nvidia"),
        failures=[CheckFailure(CheckKind.IOMMU, "IOMMU not enabled! Enable VT-d/AMD-Vi")],
        driver_status="currently using nvidia, will change after reboot",
    )


@pytest.fixture
def disk_args(tmp_path):
    disk = tmp_path / "win10.qcow2"
    disk.touch()
    return ["--disk", str(disk), "--iso", str(tmp_path / "missing.iso")]


class TestDetectCli:
    """Tests for tenpod-detect."""

    def test_scan_json(self, fake_enumerator, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli, "query_driver_binding",
                          return_value=DriverBinding.from_driver_name("nvidia")):
            code = detect_cli.main(["scan", "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["gpu"] == {"video": "0000:01:00.0", "audio": "0000:01:00.1"}
        assert data["driver"] == "nvidia"
        assert data["headsets"][0]["display_name"] == "Valve Index"

    def test_scan_is_default(self, fake_enumerator, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli, "query_driver_binding",
                          return_value=DriverBinding.from_driver_name(None)):
            code = detect_cli.main([])

        out = capsys.readouterr().out
        assert code == 0
        assert "GPU video: 0000:01:00.0" in out
        assert "Valve Index" in out

    def test_scan_without_lsusb(self, fake_enumerator, capsys):
        """A missing lsusb only skips headset detection."""
        fake_enumerator.enumerate_usb.side_effect = ToolUnavailableError("lsusb", hint="Install usbutils.")

        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli, "query_driver_binding",
                          return_value=DriverBinding.from_driver_name(None)):
            code = detect_cli.main(["scan"])

        assert code == 0
        assert "No VR headset detected" in capsys.readouterr().out

    def test_scan_with_failing_lsusb(self, fake_enumerator, capsys):
        """lsusb that runs but exits non-zero also only skips headsets."""
        fake_enumerator.enumerate_usb.side_effect = EnumerationError(
            "lsusb", "unable to initialize libusb: -99", returncode=1
        )

        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli, "query_driver_binding",
                          return_value=DriverBinding.from_driver_name(None)):
            code = detect_cli.main(["scan"])

        assert code == 0
        assert "No VR headset detected" in capsys.readouterr().out

    def test_no_gpu(self, fake_enumerator, capsys):
        fake_enumerator.enumerate_pci.return_value = ""

        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator):
            code = detect_cli.main(["scan"])

        assert code == 1
        err = capsys.readouterr().err
        assert "No NVIDIA GPU found" in err
        assert "lspci -nn" in err

    def test_missing_lspci(self, capsys):
        enumerator = MagicMock()
        enumerator.enumerate_pci.side_effect = ToolUnavailableError(
            "lspci", hint="Is pciutils installed and is 'lspci' on your PATH?"
        )

        with patch.object(detect_cli, "HostEnumerator", return_value=enumerator):
            code = detect_cli.main(["check"])

        assert code == 1
        assert "pciutils" in capsys.readouterr().err

    def test_check_ready(self, fake_enumerator, ready_report, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli.ReadinessChecker, "check_readiness", return_value=ready_report):
            code = detect_cli.main(["check"])

        assert code == 0
        assert "ready for GPU passthrough" in capsys.readouterr().out

    def test_check_blocked(self, fake_enumerator, blocked_report, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli.ReadinessChecker, "check_readiness", return_value=blocked_report):
            code = detect_cli.main(["check", "--json"])

        assert code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["ready"] is False
        assert data["failures"][0]["check"] == "iommu"

    def test_config(self, fake_enumerator, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(detect_cli.ReadinessChecker, "detect_cpu_vendor", return_value="Intel"):
            code = detect_cli.main(["config", "--memory-gb", "8", "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["vfio_ids"] == ["10de:2204", "10de:1aef"]
        assert data["hugepages"] == 4096
        assert data["kernel_params"] == "intel_iommu=on iommu=pt"

    def test_config_rejects_bad_memory(self, fake_enumerator, capsys):
        with patch.object(detect_cli, "HostEnumerator", return_value=fake_enumerator):
            code = detect_cli.main(["config", "--memory-gb", "0"])

        assert code == 1
        assert "Memory must be at least 1GB" in capsys.readouterr().err


class TestLauncherCli:
    """Tests for tenpod."""

    def test_no_command_prints_help(self, capsys):
        assert launcher_cli.main([]) == 0
        assert "tenpod start" in capsys.readouterr().out

    def test_plan(self, fake_enumerator, disk_args, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator):
            code = launcher_cli.main(["plan", "-c", "2-5"] + disk_args)

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("taskset -c 2-5 qemu-system-x86_64")
        assert "vfio-pci,host=01:00.0,multifunction=on" in out
        assert "usb-host,vendorid=0x28de,productid=0x2012" in out
        assert "-cdrom" not in out

    def test_plan_json(self, fake_enumerator, disk_args, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator):
            code = launcher_cli.main(["plan", "--json"] + disk_args)

        assert code == 0
        types = [d["type"] for d in json.loads(capsys.readouterr().out)]
        assert types[0] == "MachineType"
        assert types.count("PciPassthrough") == 2

    def test_plan_without_disk(self, fake_enumerator, tmp_path, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator):
            code = launcher_cli.main(["plan", "--disk", str(tmp_path / "none.qcow2")])

        assert code == 1
        assert "VM disk not found" in capsys.readouterr().err

    def test_bad_cpu_list(self, capsys):
        assert launcher_cli.main(["plan", "-c", "x-y"]) == 1
        assert "cpu_affinity" in capsys.readouterr().err

    def test_start_refuses_when_not_ready(self, fake_enumerator, blocked_report, disk_args, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=blocked_report), \
             patch.object(launcher_cli, "QemuInvoker") as invoker:
            code = launcher_cli.main(["start"] + disk_args)

        assert code == 1
        invoker.assert_not_called()
        assert "IOMMU not enabled" in capsys.readouterr().out

    def test_start_launches(self, fake_enumerator, ready_report, disk_args, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=ready_report), \
             patch.object(launcher_cli, "QemuInvoker") as invoker:
            invoker.return_value.launch.return_value = 0
            code = launcher_cli.main(["start", "-m", "8"] + disk_args)

        assert code == 0
        plan, profile = invoker.return_value.launch.call_args[0]
        assert profile.memory_gb == 8
        assert len(plan.of_type(UsbHostPassthrough)) == 1
        out = capsys.readouterr().out
        assert "Launching TenPod" in out
        assert "Installer ISO detected" not in out

    def test_start_with_failing_lsusb(self, fake_enumerator, ready_report, disk_args, capsys):
        """The VM still starts, without USB passthrough, when lsusb fails."""
        fake_enumerator.enumerate_usb.side_effect = EnumerationError(
            "lsusb", "unable to initialize libusb: -99", returncode=1
        )

        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=ready_report), \
             patch.object(launcher_cli, "QemuInvoker") as invoker:
            invoker.return_value.launch.return_value = 0
            code = launcher_cli.main(["start"] + disk_args)

        assert code == 0
        plan, _ = invoker.return_value.launch.call_args[0]
        assert plan.of_type(UsbHostPassthrough) == ()
        assert "No VR headset detected" in capsys.readouterr().out

    def test_stop(self, capsys):
        with patch.object(launcher_cli, "QemuInvoker") as invoker:
            invoker.return_value.request_stop.return_value = False
            code = launcher_cli.main(["stop"])

        assert code == 0
        assert "No running VM found" in capsys.readouterr().out

    def test_status_json(self, fake_enumerator, ready_report, disk_args, capsys):
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=ready_report):
            code = launcher_cli.main(["status", "--json"] + disk_args)

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["disk_present"] is True
        assert data["iso_present"] is False
        assert data["profile"] == {"memory_gb": 16, "cpu_affinity": [4, 5, 6, 7]}
        assert isinstance(data["qemu_installed"], bool)
        assert data["readiness"]["ready"] is True

    def test_status_reports_missing_qemu(self, fake_enumerator, ready_report, disk_args, capsys):
        """A missing QEMU binary is shown but does not fail the command."""
        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=ready_report), \
             patch("vm_launcher.qemu_invoker.shutil.which", return_value=None):
            code = launcher_cli.main(["status"] + disk_args)

        assert code == 0
        assert "QEMU installed... ✗" in capsys.readouterr().out

    def test_start_announces_installer_boot(self, fake_enumerator, ready_report, tmp_path, capsys):
        disk = tmp_path / "win10.qcow2"
        iso = tmp_path / "win10.iso"
        disk.touch()
        iso.touch()

        with patch.object(launcher_cli, "HostEnumerator", return_value=fake_enumerator), \
             patch.object(launcher_cli.ReadinessChecker, "check_readiness", return_value=ready_report), \
             patch.object(launcher_cli, "QemuInvoker") as invoker:
            invoker.return_value.launch.return_value = 0
            code = launcher_cli.main(["start", "--disk", str(disk), "--iso", str(iso)])

        assert code == 0
        plan, _ = invoker.return_value.launch.call_args[0]
        assert plan.boots_from_optical
        assert "Installer ISO detected" in capsys.readouterr().out
