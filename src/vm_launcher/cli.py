#!/usr/bin/env python3
"""
TenPod - High-Performance VR Gaming VM Launcher

Command line interface for starting, stopping and inspecting the VR
passthrough VM.
"""

import argparse
import json
import logging
import shlex
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import List, Optional

from common.exceptions import DiskImageMissingError, TenPodError
from common.logging_config import LogContext
from hardware_detect.cli import (
    add_logging_arguments, configure_logging, print_error, print_gpu, print_headsets,
    print_report, scan_headsets,
)
from hardware_detect.gpu_scanner import GpuTopology, resolve_gpu
from hardware_detect.host_enumerator import HostEnumerator
from hardware_detect.readiness import ReadinessChecker

from .config import LaunchSettings, VmProfile
from .launch_plan import LaunchPlan, build_plan
from .qemu_invoker import QemuInvoker, build_command

logger = logging.getLogger(__name__)


def _profile(args) -> VmProfile:
    return VmProfile.from_cpulist(args.memory_gb, args.cpus)


def _settings(args) -> LaunchSettings:
    settings = LaunchSettings()
    if getattr(args, "disk", None):
        settings = replace(settings, disk_path=args.disk)
    if getattr(args, "iso", None):
        settings = replace(settings, iso_path=args.iso)
    return settings


def _prepare_plan(args, enumerator: HostEnumerator, topology: GpuTopology,
                  settings: LaunchSettings, profile: VmProfile) -> LaunchPlan:
    """Detect headsets and build the plan; refuses without a disk image."""
    headsets = scan_headsets(enumerator)

    if not settings.disk_present:
        raise DiskImageMissingError(str(settings.disk_path))

    plan = build_plan(
        topology,
        headsets,
        profile,
        disk_present=True,
        iso_present=settings.iso_present,
        hugepages_available=settings.hugepages_available,
        settings=settings,
    )

    if not args.quiet:
        print_gpu(topology)
        print_headsets(headsets)
        if plan.boots_from_optical:
            print(f"📀 Installer ISO detected, booting from {settings.iso_path}")

    return plan


def plan_to_dict(plan: LaunchPlan) -> List[dict]:
    return [{"type": type(d).__name__, **asdict(d)} for d in plan]


def cmd_start(args) -> int:
    """Launch the VM with GPU and headset passthrough."""
    profile = _profile(args)
    settings = _settings(args)
    enumerator = HostEnumerator()

    topology = resolve_gpu(enumerator.enumerate_pci())
    report = ReadinessChecker(enumerator).check_readiness(topology)
    if not report.ready:
        print("\n⚙️  System Requirements Check:")
        print_report(report)
        print("\n💡 Tip: Run 'tenpod-detect config' if you haven't set up the host yet",
              file=sys.stderr)
        return 1

    plan = _prepare_plan(args, enumerator, topology, settings, profile)

    print(f"\n🚀 Launching {settings.vm_name} VM (VR optimized)...")
    print("📺 Check your GPU's physical monitor output for the guest display")

    with LogContext(vm_name=settings.vm_name, operation="start"):
        return QemuInvoker(settings).launch(plan, profile)


def cmd_plan(args) -> int:
    """Print the hypervisor command without running it."""
    profile = _profile(args)
    settings = _settings(args)
    enumerator = HostEnumerator()
    topology = resolve_gpu(enumerator.enumerate_pci())
    plan = _prepare_plan(args, enumerator, topology, settings, profile)

    if args.json:
        print(json.dumps(plan_to_dict(plan), indent=2, default=str))
    else:
        print(shlex.join(build_command(plan, profile, settings)))
    return 0


def cmd_stop(args) -> int:
    """Stop the running VM."""
    settings = LaunchSettings()
    print(f"🛑 Stopping {settings.vm_name} VM...")
    if QemuInvoker(settings).request_stop():
        print("✓ VM stopped")
    else:
        print("  No running VM found")
    return 0


def cmd_status(args) -> int:
    """Show detected hardware, profile and readiness."""
    profile = _profile(args)
    settings = _settings(args)
    enumerator = HostEnumerator()

    topology = resolve_gpu(enumerator.enumerate_pci())
    headsets = scan_headsets(enumerator)
    report = ReadinessChecker(enumerator).check_readiness(topology)
    qemu_installed = QemuInvoker(settings).hypervisor_installed()

    if args.json:
        print(json.dumps({
            "gpu": topology.to_dict(),
            "profile": profile.to_dict(),
            "settings": settings.to_dict(),
            "disk_present": settings.disk_present,
            "iso_present": settings.iso_present,
            "headsets": [h.to_dict() for h in headsets],
            "readiness": report.to_dict(),
            "qemu_installed": qemu_installed,
        }, indent=2))
        return 0

    print("\n📊 TENPOD STATUS\n")
    print_gpu(topology)
    print(f"  Memory: {profile.memory_gb}GB")
    print(f"  CPU Cores: {profile.cpulist}")
    print(f"  Disk: {settings.disk_path} ({'present' if settings.disk_present else 'missing'})")
    print()
    print_headsets(headsets)
    print("\n⚙️  System Requirements Check:")
    print_report(report)
    print(f"  • QEMU installed... {'✓' if qemu_installed else '✗ (install qemu-kvm)'}")
    if headsets:
        print(f"\n🎧 {len(headsets)} VR headset(s) ready for passthrough")
    return 0


def _add_profile_arguments(parser: argparse.ArgumentParser) -> None:
    defaults = VmProfile()
    parser.add_argument("-m", "--memory-gb", type=int, default=defaults.memory_gb,
                        help=f"VM memory in GB (default: {defaults.memory_gb})")
    parser.add_argument("-c", "--cpus", default=defaults.cpulist,
                        help=f"Host cores to pin the VM to (default: {defaults.cpulist})")
    parser.add_argument("--disk", type=Path, help="VM disk image path")
    parser.add_argument("--iso", type=Path, help="Installer ISO path")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="TenPod - High-Performance VR Gaming VM Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
First-time setup:
  1. tenpod-detect config   # Provisioning plan (one-time, then reboot)
  2. Put the Windows ISO at /var/lib/libvirt/images/win10.iso
  3. Plug in your VR headset
  4. tenpod start           # Launch VM
        """
    )
    add_logging_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    start_parser = subparsers.add_parser("start", help="Launch VM with GPU & headset passthrough")
    _add_profile_arguments(start_parser)
    start_parser.set_defaults(func=cmd_start, quiet=False)

    plan_parser = subparsers.add_parser("plan", help="Print the QEMU command line")
    _add_profile_arguments(plan_parser)
    plan_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    plan_parser.set_defaults(func=cmd_plan, quiet=True)

    stop_parser = subparsers.add_parser("stop", help="Stop the running VM")
    stop_parser.set_defaults(func=cmd_stop)

    status_parser = subparsers.add_parser("status", help="Show hardware and system status")
    _add_profile_arguments(status_parser)
    status_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)
    configure_logging(args)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except TenPodError as e:
        logger.debug("Command failed", exc_info=True)
        print_error(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
