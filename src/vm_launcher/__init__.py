"""
TenPod VM Launcher

Builds the ordered launch plan for the VR passthrough VM and runs it
under QEMU.
"""

# config first: hardware_detect.config_generator imports it back
from .config import LaunchSettings, VmProfile, parse_cpulist
from .launch_plan import DeviceDescriptor, LaunchPlan, build_plan
from .qemu_invoker import QemuInvoker, build_command, plan_to_args

__all__ = [
    "LaunchSettings",
    "VmProfile",
    "parse_cpulist",
    "DeviceDescriptor",
    "LaunchPlan",
    "build_plan",
    "QemuInvoker",
    "build_command",
    "plan_to_args",
]

__version__ = "0.1.0"
