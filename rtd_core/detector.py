"""Runtime detection orchestration.

RuntimeDetector owns the committed snapshot and its cache metadata. On a
cache miss it gathers kernel identity, hostname and user, normalizes
platform and architecture, runs the environment and distribution
sub-detectors and commits a complete new snapshot in a single assignment.
"""
import logging
import platform as py_platform
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional

import platform_adapters

from . import __version__
from .cache import CacheManager, compute_signature, live_uname
from .config import RTDConfig, get_config
from .environment import (
    detect_chroot,
    detect_ci,
    detect_container,
    detect_root,
    detect_ssh,
    detect_termux,
    detect_wsl,
    resolve_hostname,
    resolve_username,
)
from .exceptions import SnapshotError
from .platform import Arch, Platform, normalize_arch, normalize_platform, strip_version_suffix
from .probes import HostProbes
from .schemas import DetectionSnapshot, EnvironmentFlags, KernelInfo
from .utils import first_token, strip_control

logger = logging.getLogger(__name__)

# uname flag -> KernelInfo field, with the matching platform.uname() attribute
UNAME_FIELDS = (
    ("-s", "system", "system"),
    ("-m", "machine", "machine"),
    ("-r", "release", "release"),
    ("-v", "version", "version"),
    ("-n", "nodename", "node"),
    ("-p", "processor", "processor"),
)

ArchSource = Callable[[], Optional[str]]


class RuntimeDetector:
    """Detects runtime facts once and serves them until the cache is stale."""

    def __init__(
        self,
        config: Optional[RTDConfig] = None,
        probes: Optional[HostProbes] = None,
        environ: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.time,
        uname: Callable[[], tuple] = live_uname,
    ):
        """Initialize the detector.

        Args:
            config: Configuration. Defaults to the global config.
            probes: Host probe facade. Built from config/environ if None.
            environ: Environment mapping used for signals and signature.
            clock: Wall clock returning epoch seconds.
            uname: Live (sysname, machine) source for the cache signature.
        """
        self.config = config or get_config()
        self.probes = probes or HostProbes(config=self.config, environ=environ)
        self.environ = self.probes.environ if environ is None else environ
        self._clock = clock
        self._uname = uname
        self._lock = threading.Lock()
        self.cache = CacheManager(ttl=self.config.cache_ttl, version=__version__)
        self.detections = 0

    # Public API

    @property
    def snapshot(self) -> Optional[DetectionSnapshot]:
        """The committed snapshot, or None if nothing was detected yet."""
        return self.cache.snapshot

    def signature(self) -> str:
        return compute_signature(self.environ, __version__, self._uname)

    def detect(self) -> DetectionSnapshot:
        """Return a usable snapshot, detecting again on a cache miss."""
        with self._lock:
            if self.cache.is_usable(self._clock(), self.signature()):
                return self.cache.snapshot  # type: ignore[return-value]
            return self._detect_and_commit()

    def refresh(self) -> DetectionSnapshot:
        """Force a new detection regardless of cache state.

        The previous snapshot stays committed if detection fails.
        """
        with self._lock:
            return self._detect_and_commit()

    def available(self) -> bool:
        """Check whether facts can be served, detecting first if auto_detect is on."""
        if self.cache.snapshot is not None:
            return True
        if self.config.auto_detect:
            self.detect()
            return True
        return False

    def cleanup(self) -> None:
        """Drop the snapshot and every memoized probe result."""
        with self._lock:
            self.cache.invalidate()
            self.probes.reset()

    def status(self) -> Dict[str, object]:
        """Describe module, mode and cache state."""
        snapshot = self.cache.snapshot
        return {
            "version": __version__,
            "detected": snapshot is not None,
            "strict_cmds": self.config.strict_cmds,
            "sanitize_env": self.config.sanitize_env,
            "json_bool": self.config.json_bool,
            "cache_ttl": self.config.cache_ttl,
            "cache_age": self.cache.age(self._clock()) if snapshot else None,
            "max_file_size": self.config.max_file_size,
            "cmd_timeout": self.config.cmd_timeout,
            "auto_detect": self.config.auto_detect,
            "debug": self.config.debug,
        }

    # Detection steps

    def collect_uname(self) -> KernelInfo:
        """Probe kernel identity, falling back to platform.uname() when not strict."""
        fallback = None
        values: Dict[str, str] = {}
        for flag, field, attr in UNAME_FIELDS:
            out = self.probes.run("uname", flag)
            if out is None and not self.config.strict_cmds:
                if fallback is None:
                    fallback = py_platform.uname()
                out = getattr(fallback, attr, "") or None
            out = out or ""
            if field == "system":
                values[field] = strip_control(out)
            elif field == "version":
                values[field] = out.replace("\n", " ")
            else:
                values[field] = first_token(out)
        return KernelInfo(**values)

    def resolve_platform(self, kernel: KernelInfo) -> Platform:
        ostype = self.environ.get("OSTYPE", "")
        platform = normalize_platform(strip_version_suffix(ostype)) if ostype else Platform.UNKNOWN
        if platform == Platform.UNKNOWN:
            platform = normalize_platform(kernel.system)
        return platform

    def arch_sources(self, kernel: KernelInfo) -> List[ArchSource]:
        """Ordered architecture signals; each is only consulted while still unknown."""
        env = self.environ.get
        sources: List[ArchSource] = [
            lambda: env("HOSTTYPE") or kernel.machine,
            lambda: kernel.machine,
            lambda: kernel.processor,
        ]
        if not self.config.strict_cmds:
            sources.append(py_platform.machine)
        sources += [
            lambda: env("HOSTTYPE"),
            lambda: env("MACHTYPE"),
            lambda: env("CPUTYPE"),
        ]
        return sources

    def resolve_arch(self, kernel: KernelInfo) -> Arch:
        for source in self.arch_sources(kernel):
            raw = source()
            if not raw:
                continue
            arch = normalize_arch(raw)
            if arch != Arch.UNKNOWN:
                logger.debug(f"Architecture from {raw!r}: {arch.value}")
                return arch
        return Arch.UNKNOWN

    def _detect_flags(self, platform: Platform) -> EnvironmentFlags:
        probes = self.probes
        adapter = platform_adapters.get_adapter(platform)
        is_container = detect_container(probes)
        return EnvironmentFlags(
            is_wsl=detect_wsl(probes, platform),
            is_container=is_container,
            is_vm=adapter.detect_vm(probes),
            is_termux=detect_termux(probes),
            is_chroot=detect_chroot(probes, platform, is_container),
            is_ci=detect_ci(probes),
            is_ssh=detect_ssh(probes),
            is_root=detect_root(probes),
            is_interactive=probes.is_interactive(),
        )

    def _detect_and_commit(self) -> DetectionSnapshot:
        logger.info("Detecting platform and environment")
        started = time.monotonic()

        kernel = self.collect_uname()
        hostname = resolve_hostname(self.probes)
        username = resolve_username(self.probes)
        platform = self.resolve_platform(kernel)
        arch = self.resolve_arch(kernel)
        flags = self._detect_flags(platform)
        distro = platform_adapters.get_adapter(platform).detect_distro(self.probes)

        try:
            snapshot = DetectionSnapshot.build(
                platform=platform,
                architecture=arch,
                kernel=kernel,
                hostname=hostname,
                username=username,
                distro=distro,
                flags=flags,
                detected_at=self._clock(),
                signature=self.signature(),
            )
        except ValueError as e:
            raise SnapshotError(f"Inconsistent detection result: {e}") from e

        self.cache.commit(snapshot)
        self.detections += 1
        logger.info(
            f"Detection complete ({time.monotonic() - started:.3f}s): "
            f"{platform.value}/{arch.value} ({kernel.system} {kernel.release}), "
            f"distro={distro.id} {distro.version} ({distro.codename})"
        )
        return snapshot


# Lazy singleton pattern
_detector_instance: Optional[RuntimeDetector] = None
_detector_lock = threading.Lock()


def get_detector() -> RuntimeDetector:
    """Get the process-wide detector (lazy initialization)."""
    global _detector_instance
    with _detector_lock:
        if _detector_instance is None:
            _detector_instance = RuntimeDetector()
        return _detector_instance


def reset_detector() -> None:
    """Clean up and drop the process-wide detector. Useful for testing."""
    global _detector_instance
    with _detector_lock:
        if _detector_instance is not None:
            _detector_instance.cleanup()
        _detector_instance = None
