"""
VM Configuration - Dataclasses for the VM profile and launch settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from common.exceptions import InvalidConfigError


def parse_cpulist(text: str) -> Tuple[int, ...]:
    """
    Parse a taskset-style CPU list ("4-7", "0,2,4-5") into ordered indices.

    Duplicates are dropped, first occurrence keeps its position.

    Raises:
        ValueError: on anything that is not a valid list.
    """
    cores: List[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty entry in CPU list {text!r}")
        if "-" in part:
            start_text, end_text = part.split("-", 1)
            start, end = int(start_text), int(end_text)
            if start < 0 or end < start:
                raise ValueError(f"Bad CPU range {part!r}")
            span = range(start, end + 1)
        else:
            core = int(part)
            if core < 0:
                raise ValueError(f"Bad CPU index {part!r}")
            span = range(core, core + 1)
        for core in span:
            if core not in cores:
                cores.append(core)
    return tuple(cores)


def format_cpulist(cores: Tuple[int, ...]) -> str:
    """Format core indices back into taskset syntax, collapsing runs."""
    parts = []
    i = 0
    while i < len(cores):
        j = i
        while j + 1 < len(cores) and cores[j + 1] == cores[j] + 1:
            j += 1
        parts.append(str(cores[i]) if i == j else f"{cores[i]}-{cores[j]}")
        i = j + 1
    return ",".join(parts)


@dataclass(frozen=True)
class VmProfile:
    """Memory size and host CPU pinning for the VM."""

    memory_gb: int = 16  # Recommended for VR
    cpu_affinity: Tuple[int, ...] = (4, 5, 6, 7)

    @classmethod
    def from_cpulist(cls, memory_gb: int, cpulist: str) -> "VmProfile":
        """
        Build a profile from CLI-style values.

        Raises:
            InvalidConfigError: if the CPU list cannot be parsed or the
                resulting profile is invalid.
        """
        try:
            cores = parse_cpulist(cpulist)
        except ValueError as e:
            raise InvalidConfigError("cpu_affinity", cpulist, str(e)) from e
        profile = cls(memory_gb=memory_gb, cpu_affinity=cores)
        profile.ensure_valid()
        return profile

    @property
    def vcpus(self) -> int:
        return len(self.cpu_affinity)

    @property
    def cpulist(self) -> str:
        return format_cpulist(self.cpu_affinity)

    def validate(self) -> List[str]:
        """
        Validate the profile and return a list of errors.

        Returns:
            List of error messages. Empty if valid.
        """
        errors = []

        if self.memory_gb < 1:
            errors.append("Memory must be at least 1GB")

        if not self.cpu_affinity:
            errors.append("CPU affinity must name at least one core")
        elif len(set(self.cpu_affinity)) != len(self.cpu_affinity):
            errors.append("CPU affinity lists a core more than once")
        elif any(core < 0 for core in self.cpu_affinity):
            errors.append("CPU affinity contains a negative core index")

        return errors

    def ensure_valid(self) -> None:
        """Raise InvalidConfigError for the first validation problem."""
        errors = self.validate()
        if errors:
            raise InvalidConfigError("vm_profile", self.to_dict(), errors[0])

    def to_dict(self) -> dict:
        return {"memory_gb": self.memory_gb, "cpu_affinity": list(self.cpu_affinity)}


@dataclass(frozen=True)
class LaunchSettings:
    """Where things live on the host and what the VM is called."""

    vm_name: str = "TenPod"
    qemu_binary: str = "qemu-system-x86_64"
    disk_path: Path = Path("/var/lib/libvirt/images/win10_tenpod.qcow2")
    iso_path: Path = Path("/var/lib/libvirt/images/win10.iso")
    hugepages_path: Path = Path("/dev/hugepages")
    disk_size: str = "100G"
    disk_format: str = "qcow2"
    hv_vendor_id: str = "tenpodvr"
    extra_groups: Tuple[str, ...] = field(default=("libvirt", "kvm", "input"))

    @property
    def disk_present(self) -> bool:
        return self.disk_path.exists()

    @property
    def iso_present(self) -> bool:
        return self.iso_path.exists()

    @property
    def hugepages_available(self) -> bool:
        return self.hugepages_path.exists()

    def to_dict(self) -> dict:
        return {
            "vm_name": self.vm_name,
            "qemu_binary": self.qemu_binary,
            "disk_path": str(self.disk_path),
            "iso_path": str(self.iso_path),
            "hugepages_path": str(self.hugepages_path),
            "disk_size": self.disk_size,
        }
