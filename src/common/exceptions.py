"""
TenPod Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, operator feedback, and programmatic error handling.
"""

from typing import Optional, Dict, Any


class TenPodError(Exception):
    """
    Base exception for all TenPod errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    @property
    def hint(self) -> Optional[str]:
        """Remediation hint for the operator, if one is known."""
        return self.details.get("hint")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Hardware-related errors
# =============================================================================

class HardwareError(TenPodError):
    """Base for hardware-related errors."""
    pass


class EnumerationError(HardwareError):
    """A host inventory command did not produce usable output."""
    def __init__(
        self,
        tool: str,
        reason: str,
        returncode: Optional[int] = None,
        cause: Optional[Exception] = None,
        code: str = "ENUMERATION_FAILED",
        hint: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"tool": tool, "reason": reason}
        if returncode is not None:
            details["returncode"] = returncode
        if hint:
            details["hint"] = hint
        super().__init__(
            f"'{tool}' failed: {reason}",
            code=code,
            details=details,
            cause=cause,
            recoverable=False,
        )
        self.tool = tool


class ToolUnavailableError(EnumerationError):
    """A host inventory command could not be started at all."""
    def __init__(self, tool: str, hint: str, cause: Optional[Exception] = None):
        super().__init__(
            tool,
            "could not be started",
            cause=cause,
            code="TOOL_UNAVAILABLE",
            hint=hint,
        )


class NoGpuFoundError(HardwareError):
    """No NVIDIA video function in the PCI listing."""
    def __init__(self, reason: str = "No NVIDIA GPU found"):
        super().__init__(
            reason,
            code="GPU_NOT_FOUND",
            details={"hint": "Make sure your GPU is properly seated and visible in 'lspci -nn'."},
            recoverable=False,
        )


# =============================================================================
# VM-related errors
# =============================================================================

class VMError(TenPodError):
    """Base for VM-related errors."""
    pass


class HypervisorLaunchError(VMError):
    """The hypervisor process could not be started."""
    def __init__(self, vm_name: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Failed to start VM '{vm_name}': {reason}",
            code="VM_START_FAILED",
            details={"vm_name": vm_name, "reason": reason},
            cause=cause,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(TenPodError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )


class DiskImageMissingError(ConfigError):
    """The VM disk image has not been created yet."""
    def __init__(self, path: str):
        super().__init__(
            f"VM disk not found at {path}",
            code="DISK_IMAGE_MISSING",
            details={
                "path": path,
                "hint": "Run 'tenpod-detect config' and create the disk image first.",
            },
        )


# =============================================================================
# Template errors
# =============================================================================

class TemplateError(TenPodError):
    """Template-related errors."""
    pass


class TemplateNotFoundError(TemplateError):
    """Template not found."""
    def __init__(self, template_name: str):
        super().__init__(
            f"Template not found: {template_name}",
            code="TEMPLATE_NOT_FOUND",
            details={"template": template_name},
        )


class TemplateRenderError(TemplateError):
    """Template rendering failed."""
    def __init__(self, template_name: str, reason: str):
        super().__init__(
            f"Failed to render template '{template_name}': {reason}",
            code="TEMPLATE_RENDER_FAILED",
            details={"template": template_name, "reason": reason},
        )
