"""Single-node k3s + Flux bootstrap orchestrator."""

from .config import ConfigValidator, Configuration, REQUIRED_VARS, load_configuration
from .errors import (
    BootstrapError,
    ConfigurationError,
    ConnectivityError,
    DownloadError,
    InstallError,
    KeyExtractionError,
    PrivilegeError,
    StageError,
    ValidationFailed,
    WaitTimeoutError,
)
from .pipeline import Probe, Stage, run_pipeline, work_directory
from .settings import Settings, load_settings
from .stages import BootstrapContext, build_stages, run_bootstrap

__all__ = [
    "BootstrapContext",
    "BootstrapError",
    "ConfigValidator",
    "Configuration",
    "ConfigurationError",
    "ConnectivityError",
    "DownloadError",
    "InstallError",
    "KeyExtractionError",
    "PrivilegeError",
    "Probe",
    "REQUIRED_VARS",
    "Settings",
    "Stage",
    "StageError",
    "ValidationFailed",
    "WaitTimeoutError",
    "build_stages",
    "load_configuration",
    "load_settings",
    "run_bootstrap",
    "run_pipeline",
    "work_directory",
]
