"""Pydantic schemas for RTD detection results.

Snapshots are immutable: a new detection always builds a complete new
snapshot instead of touching fields of the current one.
"""
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .platform import Arch, Platform, is_arm, is_bsd, is_unix

UNKNOWN = "unknown"


class KernelInfo(BaseModel):
    """Raw kernel identity as reported by uname."""
    model_config = ConfigDict(frozen=True)

    system: str = ""
    machine: str = ""
    release: str = ""
    version: str = ""
    nodename: str = ""
    processor: str = ""


class DistroInfo(BaseModel):
    """Distribution identity; every field is "unknown" when unresolved."""
    model_config = ConfigDict(frozen=True)

    id: str = UNKNOWN
    version: str = UNKNOWN
    codename: str = UNKNOWN


class EnvironmentFlags(BaseModel):
    """Boolean facts gathered by the environment sub-detectors."""
    model_config = ConfigDict(frozen=True)

    is_wsl: bool = False
    is_container: bool = False
    is_vm: bool = False
    is_termux: bool = False
    is_chroot: bool = False
    is_ci: bool = False
    is_ssh: bool = False
    is_root: bool = False
    is_interactive: bool = False


class DetectionSnapshot(BaseModel):
    """A complete, consistent set of detected runtime facts."""
    model_config = ConfigDict(frozen=True)

    platform: Platform = Platform.UNKNOWN
    architecture: Arch = Arch.UNKNOWN
    kernel: str = ""
    kernel_release: str = ""
    kernel_version: str = ""
    hostname: str = "localhost"
    username: str = UNKNOWN
    distro: str = UNKNOWN
    distro_version: str = UNKNOWN
    distro_codename: str = UNKNOWN

    is_wsl: bool = False
    is_container: bool = False
    is_vm: bool = False
    is_termux: bool = False
    is_chroot: bool = False
    is_ci: bool = False
    is_ssh: bool = False
    is_root: bool = False
    is_interactive: bool = False

    is_macos: bool = False
    is_linux: bool = False
    is_bsd: bool = False
    is_unix: bool = False
    is_arm: bool = False
    is_x86_64: bool = False

    detected_at: float = Field(default=0.0, description="Epoch seconds of the commit")
    signature: str = ""

    @model_validator(mode="after")
    def _check_derived_flags(self) -> "DetectionSnapshot":
        expected = derived_flags(self.platform, self.architecture)
        for name, value in expected.items():
            if getattr(self, name) != value:
                raise ValueError(f"{name}={getattr(self, name)} inconsistent with {self.platform.value}/{self.architecture.value}")
        return self

    @classmethod
    def build(
        cls,
        platform: Platform,
        architecture: Arch,
        kernel: KernelInfo,
        hostname: str,
        username: str,
        distro: DistroInfo,
        flags: EnvironmentFlags,
        detected_at: float,
        signature: str,
    ) -> "DetectionSnapshot":
        """Assemble a snapshot, computing the derived booleans."""
        return cls(
            platform=platform,
            architecture=architecture,
            kernel=kernel.system,
            kernel_release=kernel.release,
            kernel_version=kernel.version,
            hostname=hostname,
            username=username,
            distro=distro.id,
            distro_version=distro.version,
            distro_codename=distro.codename,
            detected_at=detected_at,
            signature=signature,
            **flags.model_dump(),
            **derived_flags(platform, architecture),
        )

    def flags(self) -> Dict[str, bool]:
        """Return every boolean fact, in display order."""
        return {name: getattr(self, name) for name in FLAG_ORDER}


FLAG_ORDER = (
    "is_macos",
    "is_linux",
    "is_bsd",
    "is_unix",
    "is_arm",
    "is_x86_64",
    "is_wsl",
    "is_container",
    "is_vm",
    "is_termux",
    "is_chroot",
    "is_interactive",
    "is_ssh",
    "is_root",
    "is_ci",
)


def derived_flags(platform: Platform, architecture: Arch) -> Dict[str, bool]:
    """Booleans that follow directly from platform and architecture."""
    return {
        "is_macos": platform == Platform.DARWIN,
        "is_linux": platform == Platform.LINUX,
        "is_bsd": is_bsd(platform),
        "is_unix": is_unix(platform),
        "is_arm": is_arm(architecture),
        "is_x86_64": architecture == Arch.X86_64,
    }
