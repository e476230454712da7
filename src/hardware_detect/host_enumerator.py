#!/usr/bin/env python3
"""
TenPod Hardware Detection - Host Enumerator

Runs the host inventory commands (lspci, lsusb, dmesg) and hands back
their raw text. Parsing happens elsewhere; this module only knows how to
run a tool and how it can fail.
"""

import logging
import subprocess
from typing import List

from common.decorators import timed
from common.exceptions import EnumerationError, ToolUnavailableError

logger = logging.getLogger(__name__)


class HostEnumerator:
    """Runs host inventory tools and returns their stdout."""

    DEFAULT_TIMEOUT = 10  # seconds

    # Package that provides each tool, used for the operator hint
    TOOL_PACKAGES = {
        "lspci": "pciutils",
        "lsusb": "usbutils",
        "dmesg": "util-linux",
    }

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def enumerate_pci(self) -> str:
        """Return `lspci -nn` output (class codes and vendor:device ids)."""
        return self._run(["lspci", "-nn"])

    def enumerate_usb(self) -> str:
        """Return `lsusb` output."""
        return self._run(["lsusb"])

    def read_boot_log(self) -> str:
        """Return the kernel ring buffer."""
        return self._run(["dmesg"])

    @timed
    def _run(self, command: List[str]) -> str:
        tool = command[0]
        logger.debug(f"Running {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                timeout=self.timeout,
            )
        except (FileNotFoundError, PermissionError) as e:
            package = self.TOOL_PACKAGES.get(tool, tool)
            raise ToolUnavailableError(
                tool,
                hint=f"Is {package} installed and is '{tool}' on your PATH?",
                cause=e,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise EnumerationError(
                tool, f"timed out after {self.timeout}s", cause=e
            ) from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise EnumerationError(
                tool,
                stderr or f"exited with status {result.returncode}",
                returncode=result.returncode,
            )

        return result.stdout.decode("utf-8", errors="replace")
