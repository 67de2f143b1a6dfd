"""Platform adapters for OS-specific detection."""
from typing import Dict

from rtd_core.platform import Platform

from .base import GenericAdapter, PlatformAdapter
from .linux_adapter import LinuxAdapter
from .macos_adapter import MacOSAdapter

# One adapter instance per platform
_adapter_instances: Dict[Platform, PlatformAdapter] = {}


def get_adapter(platform: Platform) -> PlatformAdapter:
    """Get the platform adapter for a normalized platform (cached)."""
    adapter = _adapter_instances.get(platform)
    if adapter is None:
        if platform == Platform.LINUX:
            adapter = LinuxAdapter()
        elif platform == Platform.DARWIN:
            adapter = MacOSAdapter()
        else:
            adapter = GenericAdapter(platform)
        _adapter_instances[platform] = adapter
    return adapter


def reset_adapter() -> None:
    """Reset the adapter cache. Useful for testing."""
    _adapter_instances.clear()


__all__ = [
    "PlatformAdapter",
    "GenericAdapter",
    "LinuxAdapter",
    "MacOSAdapter",
    "get_adapter",
    "reset_adapter",
]
