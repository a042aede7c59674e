from __future__ import annotations

from typing import Optional, Sequence


class InstallerError(RuntimeError):
    """Base class for fatal installer errors."""


class ResolutionError(InstallerError):
    """A disk id does not map to a present device, or a derived value is missing."""


class ProvisioningError(InstallerError):
    """An external tool invocation or a filesystem write failed."""

    def __init__(
        self,
        message: str,
        *,
        argv: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.argv = list(argv) if argv is not None else None
        self.returncode = returncode
        self.stderr = stderr


class ConfigError(InstallerError):
    """The install config file is missing, unreadable or malformed."""
