"""Error taxonomy for provisioning runs.

Every error aborts the run. Each carries the name of the step that failed so
the CLI can report it without knowing where it was raised.
"""
from typing import List, Optional, Sequence


class ProvisionError(Exception):
    """Base class for all provisioning failures."""

    step = "provision"

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        if step:
            self.step = step


# ==================== User input ====================

class SpecValidationError(ProvisionError):
    """The requested container spec is invalid."""

    step = "validate"


class InvalidSpec(SpecValidationError):
    """A spec field is malformed or out of range."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid container spec:\n  - " + "\n  - ".join(self.errors))


class DuplicateContainerID(SpecValidationError):
    """The requested VMID is already used on this host."""

    def __init__(self, vmid: int):
        self.vmid = vmid
        super().__init__(f"Container {vmid} already exists")


class PasswordMismatch(SpecValidationError):
    """Root password confirmation differs from the first entry."""

    def __init__(self):
        super().__init__("Passwords do not match")


# ==================== Host environment ====================

class HostEnvironmentError(ProvisionError):
    """The host is missing something the spec needs."""

    step = "environment"


class MissingDevice(HostEnvironmentError):
    """No usable device node was found for passthrough."""

    step = "passthrough"

    def __init__(self, message: str = "No GPU card node found"):
        super().__init__(message)


class AmbiguousDevice(HostEnvironmentError):
    """Several GPU candidates exist and none was selected explicitly."""

    step = "passthrough"

    def __init__(self, candidates: Sequence[str]):
        self.candidates = list(candidates)
        super().__init__(
            f"Multiple GPU card nodes found ({', '.join(self.candidates)}); "
            "choose one with --gpu-card"
        )


class TemplateUnavailable(HostEnvironmentError):
    """No cached template matches and downloading was not permitted or failed."""

    step = "template"

    def __init__(self, os_version: str, reason: str = "not cached locally"):
        self.os_version = os_version
        super().__init__(f"No {os_version} template available: {reason}")


# ==================== External commands ====================

class ExternalCommandError(ProvisionError):
    """An invoked tool returned non-zero."""

    step = "command"

    def __init__(self, command: Sequence[str], returncode: int,
                 stderr: str = "", step: Optional[str] = None):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"'{self.command[0] if self.command else '?'}' exited with code {returncode}"
        if self.stderr:
            message += f": {self.stderr.splitlines()[-1]}"
        super().__init__(message, step=step)


class BootstrapFailed(ExternalCommandError):
    """Package bootstrap inside the container returned non-zero."""

    step = "bootstrap"


class HealthCheckFailed(ExternalCommandError):
    """An installed service is not active after start."""

    step = "health-check"

    def __init__(self, vmid: int, service: str):
        self.vmid = vmid
        self.service = service
        super().__init__(
            ["systemctl", "is-active", service], 3,
            stderr=f"{service} is not running in container {vmid}",
        )
