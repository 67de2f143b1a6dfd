from abc import ABC, abstractmethod

from rtd_core.platform import Platform
from rtd_core.probes import HostProbes
from rtd_core.schemas import DistroInfo


class PlatformAdapter(ABC):
    """Abstract base class for platform-specific detection."""

    platform: Platform = Platform.UNKNOWN

    @abstractmethod
    def detect_vm(self, probes: HostProbes) -> bool:
        """Return True if the host runs under a hypervisor."""
        raise NotImplementedError

    @abstractmethod
    def detect_distro(self, probes: HostProbes) -> DistroInfo:
        """Return distribution id, version and codename."""
        raise NotImplementedError


class GenericAdapter(PlatformAdapter):
    """Fallback for platforms without specific probes."""

    def __init__(self, platform: Platform = Platform.UNKNOWN):
        self.platform = platform

    def detect_vm(self, probes: HostProbes) -> bool:
        return False

    def detect_distro(self, probes: HostProbes) -> DistroInfo:
        return DistroInfo()
