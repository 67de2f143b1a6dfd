"""RTD Exception Hierarchy."""
from typing import Iterable


class RTDError(Exception):
    """Base exception for all RTD errors."""
    pass


class ProbeError(RTDError):
    """Base exception for probe failures (commands and files)."""
    pass


class ProbeDeniedError(ProbeError):
    """Raised when a probe is refused by policy."""
    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Probe denied: {target} ({reason})")


class ProbeUnavailableError(ProbeError):
    """Raised when a probe source is not present on this host."""
    def __init__(self, target: str):
        self.target = target
        super().__init__(f"Probe source unavailable: {target}")


class ProbeTimeoutError(ProbeError):
    """Raised when a probe exceeds its time budget."""
    def __init__(self, target: str, timeout: float):
        self.target = target
        self.timeout = timeout
        super().__init__(f"Probe timed out after {timeout}s: {target}")


class SnapshotError(RTDError):
    """Raised when a detection snapshot would be internally inconsistent."""
    pass


class ConfigError(RTDError):
    """Base exception for configuration errors."""
    pass


class ValidationError(RTDError):
    """Raised when input validation fails."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Validation error for '{field}': {message}")


class NotDetectedError(RTDError):
    """Raised when facts are queried before any successful detection."""
    def __init__(self):
        super().__init__("Runtime not detected yet. Run detection first.")


class UnknownQueryError(RTDError):
    """Raised when a query argument is not recognized."""
    def __init__(self, kind: str, value: str, valid: Iterable[str]):
        self.kind = kind
        self.value = value
        self.valid = tuple(valid)
        super().__init__(f"Unknown {kind}: {value} (valid: {', '.join(self.valid)})")
