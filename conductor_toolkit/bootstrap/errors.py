"""Error taxonomy for the bootstrap pipeline.

Every error is fatal to the run. Re-running the whole pipeline is the only
retry mechanism, which is safe because every stage is idempotent.
"""

from __future__ import annotations

from collections.abc import Sequence


class BootstrapError(RuntimeError):
    """Raised when the bootstrap workflow cannot complete."""


class ConfigurationError(BootstrapError):
    """Required inputs are missing or invalid."""

    def __init__(self, missing: Sequence[str], hint: str | None = None) -> None:
        self.missing = list(missing)
        message = f"missing required variables: {' '.join(self.missing)}"
        if hint:
            message = f"{message}\n    {hint}"
        super().__init__(message)


class PrivilegeError(BootstrapError):
    """The process runs under the wrong identity."""


class ConnectivityError(BootstrapError):
    """Pre-flight reachability check failed."""


class DownloadError(BootstrapError):
    """A release artifact could not be fetched."""


class InstallError(BootstrapError):
    """A downloaded artifact could not be installed."""


class WaitTimeoutError(BootstrapError):
    """A bounded wait expired before its condition was satisfied."""

    def __init__(self, condition: str, timeout: float, hint: str | None = None) -> None:
        self.condition = condition
        self.timeout = timeout
        message = f"{condition} not satisfied within {timeout:g}s"
        if hint:
            message = f"{message} - {hint}"
        super().__init__(message)


class KeyExtractionError(BootstrapError):
    """The private key file does not describe its public key."""


class ValidationFailed(BootstrapError):
    """Several pre-flight checks failed at once."""

    def __init__(self, errors: Sequence[BootstrapError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors))


class StageError(BootstrapError):
    """A pipeline stage failed; ``stage`` names it."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"{stage}: {message}")


__all__ = [
    "BootstrapError",
    "ConfigurationError",
    "ConnectivityError",
    "DownloadError",
    "InstallError",
    "KeyExtractionError",
    "PrivilegeError",
    "StageError",
    "ValidationFailed",
    "WaitTimeoutError",
]
