"""Snapshot cache with TTL, environment signature and version checks."""
import logging
import os
from enum import Enum
from typing import Callable, Mapping, Optional, Tuple

from .schemas import DetectionSnapshot

logger = logging.getLogger(__name__)

SIGNATURE_ENV_VARS = ("OSTYPE", "MACHTYPE", "HOSTTYPE")


class CacheState(str, Enum):
    EMPTY = "empty"
    VALID = "valid"


def live_uname() -> Tuple[str, str]:
    """Return the current (sysname, machine) pair straight from the kernel."""
    try:
        u = os.uname()
    except (AttributeError, OSError):
        return "", ""
    return u.sysname, u.machine


def _id(getter_name: str) -> str:
    getter = getattr(os, getter_name, None)
    return str(getter()) if getter is not None else ""


def compute_signature(
    environ: Mapping[str, str],
    version: str,
    uname: Callable[[], Tuple[str, str]] = live_uname,
) -> str:
    """Summarize the environment identity a snapshot was taken in.

    Args:
        environ: Environment providing OSTYPE/MACHTYPE/HOSTTYPE.
        version: Module version recorded with the snapshot.
        uname: Source of the live (sysname, machine) pair.

    Returns:
        Colon-joined signature string.
    """
    system, machine = uname()
    parts = [environ.get(name, "") for name in SIGNATURE_ENV_VARS]
    parts += [_id("geteuid"), _id("getuid"), version, system, machine]
    return ":".join(parts)


class CacheManager:
    """Holds the committed snapshot and decides whether it is still usable."""

    def __init__(self, ttl: int, version: str):
        self.ttl = ttl
        self.version = version
        self._snapshot: Optional[DetectionSnapshot] = None
        self._committed_at = 0.0
        self._signature = ""
        self._version = ""

    @property
    def state(self) -> CacheState:
        return CacheState.EMPTY if self._snapshot is None else CacheState.VALID

    @property
    def snapshot(self) -> Optional[DetectionSnapshot]:
        return self._snapshot

    @property
    def committed_at(self) -> float:
        return self._committed_at

    def age(self, now: float) -> float:
        """Seconds since the last commit (0 when empty)."""
        if self._snapshot is None:
            return 0.0
        return max(0.0, now - self._committed_at)

    def is_usable(self, now: float, signature: str) -> bool:
        """Check TTL, signature and version of the committed snapshot."""
        if self._snapshot is None:
            return False
        if now - self._committed_at >= self.ttl:
            logger.debug("Cache expired")
            return False
        if signature != self._signature:
            logger.debug("Cache signature changed")
            return False
        if self._version != self.version:
            logger.debug("Cache version changed")
            return False
        return True

    def commit(self, snapshot: DetectionSnapshot) -> None:
        """Store a snapshot with its own signature and timestamp."""
        self._snapshot, self._committed_at, self._signature, self._version = (
            snapshot,
            snapshot.detected_at,
            snapshot.signature,
            self.version,
        )

    def invalidate(self) -> None:
        """Drop the snapshot (Valid -> Empty)."""
        self._snapshot = None
        self._committed_at = 0.0
        self._signature = ""
        self._version = ""
