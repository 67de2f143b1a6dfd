"""
RTD Core Module - Runtime Detection Core Library.
"""
__version__ = "0.1.0"
API_VERSION = "2"

from .exceptions import (
    RTDError,
    ProbeError,
    ProbeDeniedError,
    ProbeUnavailableError,
    ProbeTimeoutError,
    SnapshotError,
    ConfigError,
    ValidationError,
    NotDetectedError,
    UnknownQueryError,
)
from .config import get_config, get_config_manager
from .platform import Arch, Platform
from .schemas import DetectionSnapshot
from .detector import RuntimeDetector, get_detector, reset_detector
from . import api

__all__ = [
    "__version__",
    "API_VERSION",
    # Exceptions
    "RTDError",
    "ProbeError",
    "ProbeDeniedError",
    "ProbeUnavailableError",
    "ProbeTimeoutError",
    "SnapshotError",
    "ConfigError",
    "ValidationError",
    "NotDetectedError",
    "UnknownQueryError",
    # Config
    "get_config",
    "get_config_manager",
    # Detection
    "Arch",
    "Platform",
    "DetectionSnapshot",
    "RuntimeDetector",
    "get_detector",
    "reset_detector",
    # Submodules
    "api",
]
