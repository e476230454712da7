#!/usr/bin/env python3
"""
TenPod Hardware Detection - Command Line Interface

Unified CLI for hardware detection, readiness checks and the
provisioning plan.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.exceptions import EnumerationError, TenPodError
from common.logging_config import setup_logging
from vm_launcher.config import LaunchSettings, VmProfile

from .config_generator import ConfigGenerator
from .gpu_scanner import GpuTopology, query_driver_binding, resolve_gpu, vfio_ids_for
from .host_enumerator import HostEnumerator
from .readiness import ReadinessChecker, ReadinessReport
from .usb_headsets import HeadsetDevice, resolve_headsets

logger = logging.getLogger(__name__)


def scan_headsets(enumerator: HostEnumerator) -> List[HeadsetDevice]:
    """Detect headsets; a missing or failing lsusb only costs us headset detection."""
    try:
        return resolve_headsets(enumerator.enumerate_usb())
    except EnumerationError as e:
        hint = f" {e.hint}" if e.hint else ""
        logger.warning(f"{e.message}.{hint} Headset detection skipped.")
        return []


def print_error(error: TenPodError) -> None:
    print(f"❌ {error.message}", file=sys.stderr)
    if error.hint:
        print(f"   {error.hint}", file=sys.stderr)


def print_gpu(topology: GpuTopology) -> None:
    print(f"✓ GPU video: {topology.video}")
    if topology.audio:
        print(f"✓ GPU audio: {topology.audio}")
    else:
        print("⚠️  GPU audio device not found (some GPUs don't have it)")


def print_headsets(headsets: List[HeadsetDevice]) -> None:
    if not headsets:
        print("  No VR headset detected (plug it in before starting the VM)")
    for headset in headsets:
        print(f"✓ Headset: {headset.display_name} ({headset.vendor_id}:{headset.product_id})")


def print_report(report: ReadinessReport) -> None:
    print(f"  • IOMMU enabled... {'✓' if report.iommu_ok else '✗'}")
    print(f"  • CPU virtualization... {'✓' if report.virt_ext_ok else '✗'}")
    print(f"  • GPU driver: {report.gpu_driver} ({report.driver_status})")
    for failure in report.failures:
        print(f"\n❌ {failure.remediation}")


def cmd_scan(args) -> int:
    """Scan and display hardware."""
    enumerator = HostEnumerator()
    topology = resolve_gpu(enumerator.enumerate_pci())
    driver = query_driver_binding(topology.video)
    headsets = scan_headsets(enumerator)

    if args.json:
        print(json.dumps({
            "gpu": topology.to_dict(),
            "driver": str(driver),
            "headsets": [h.to_dict() for h in headsets],
        }, indent=2))
        return 0

    print("=== TenPod Hardware Detection ===\n")
    print_gpu(topology)
    print(f"  Current driver: {driver} ({ReadinessChecker.describe_driver(driver)})")
    print()
    print_headsets(headsets)
    return 0


def cmd_check(args) -> int:
    """Readiness check; exit status 1 when a blocking check fails."""
    enumerator = HostEnumerator()
    topology = resolve_gpu(enumerator.enumerate_pci())
    report = ReadinessChecker(enumerator).check_readiness(topology)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print("=== TenPod System Requirements Check ===\n")
        print_report(report)
        if report.ready:
            print("\n✅ System is ready for GPU passthrough")

    return 0 if report.ready else 1


def cmd_config(args) -> int:
    """Show the one-time provisioning plan."""
    enumerator = HostEnumerator()
    raw_pci = enumerator.enumerate_pci()
    topology = resolve_gpu(raw_pci)
    profile = VmProfile(memory_gb=args.memory_gb)
    profile.ensure_valid()

    generator = ConfigGenerator()
    plan = generator.generate(
        topology,
        vfio_ids_for(raw_pci, topology),
        profile,
        LaunchSettings(),
        cpu_vendor=ReadinessChecker(enumerator).detect_cpu_vendor(),
    )

    if args.json:
        print(json.dumps(plan.to_dict(), indent=2))
    else:
        print(generator.render(plan))

    return 0 if plan.is_valid else 1


def add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More log output (-vv for debug)")
    parser.add_argument("--log-file", type=Path, help="Also log to this file")
    parser.add_argument("--json-logs", action="store_true",
                        help="Write the log file as JSON lines")


def configure_logging(args) -> None:
    levels = {0: logging.WARNING, 1: logging.INFO}
    setup_logging(
        level=levels.get(args.verbose, logging.DEBUG),
        log_file=args.log_file,
        json_logs=args.json_logs,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="TenPod Hardware Detection Utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tenpod-detect scan       # GPU, audio function and headsets
  tenpod-detect check      # IOMMU / virtualization readiness
  tenpod-detect config     # One-time provisioning plan
        """
    )
    add_logging_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    scan_parser = subparsers.add_parser("scan", help="Scan hardware")
    scan_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    scan_parser.set_defaults(func=cmd_scan)

    check_parser = subparsers.add_parser("check", help="System requirements check")
    check_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    check_parser.set_defaults(func=cmd_check)

    config_parser = subparsers.add_parser("config", help="Show provisioning plan")
    config_parser.add_argument("-m", "--memory-gb", type=int, default=VmProfile.memory_gb,
                               help="VM memory used to size hugepages")
    config_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)
    configure_logging(args)

    if args.command is None:
        # Default to scan
        args.json = False
        args.func = cmd_scan

    try:
        return args.func(args)
    except TenPodError as e:
        logger.debug("Command failed", exc_info=True)
        print_error(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
