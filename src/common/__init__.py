"""
TenPod Common Utilities

Shared error types, logging setup and decorators for the TenPod tools.
"""

from .exceptions import (
    TenPodError, HardwareError, EnumerationError, ToolUnavailableError,
    NoGpuFoundError, VMError, HypervisorLaunchError, ConfigError,
    InvalidConfigError, DiskImageMissingError, TemplateError,
    TemplateNotFoundError, TemplateRenderError,
)
from .decorators import handle_errors, timed
from .logging_config import setup_logging, LogContext, JSONFormatter

__all__ = [
    # Exceptions
    "TenPodError", "HardwareError", "EnumerationError", "ToolUnavailableError",
    "NoGpuFoundError", "VMError", "HypervisorLaunchError", "ConfigError",
    "InvalidConfigError", "DiskImageMissingError", "TemplateError",
    "TemplateNotFoundError", "TemplateRenderError",
    # Decorators
    "handle_errors", "timed",
    # Logging
    "setup_logging", "LogContext", "JSONFormatter",
]
