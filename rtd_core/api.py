"""Query API over the committed detection snapshot.

Every query works on a RuntimeDetector (the process-wide one by default).
When nothing was detected yet, queries detect first if auto_detect is on
and raise NotDetectedError otherwise.
"""
import json
import logging
from typing import Dict, List, Optional, Tuple

from . import API_VERSION, __version__
from .detector import RuntimeDetector, get_detector
from .exceptions import NotDetectedError, UnknownQueryError
from .platform import Arch, Platform
from .schemas import FLAG_ORDER, UNKNOWN, DetectionSnapshot

logger = logging.getLogger(__name__)

INFO_KINDS = ("summary", "full", "extended", "distro", "hostname", "username", "flags", "json", "version", "api-version")
IS_TARGETS = (
    "macos", "linux", "bsd", "unix", "windows", "wsl", "container", "vm",
    "ssh", "termux", "chroot", "interactive", "root", "ci", "bare-metal",
)
ARCH_QUERIES = ("name", "bits", "family", "endian", "instruction-set")
PATH_KINDS = ("temp", "config", "cache", "data", "runtime", "home")

# Flag -> label used by the "extended" and "flags" views, in display order
FLAG_LABELS = (
    ("is_macos", "macOS"),
    ("is_linux", "Linux"),
    ("is_bsd", "BSD"),
    ("is_wsl", "WSL"),
    ("is_container", "Container"),
    ("is_vm", "VM"),
    ("is_ssh", "SSH"),
    ("is_termux", "Termux"),
    ("is_root", "Root"),
    ("is_ci", "CI"),
)

ARCH_BITS = {
    Arch.X86_64: "64", Arch.AARCH64: "64", Arch.POWERPC64: "64", Arch.MIPS64: "64",
    Arch.S390X: "64", Arch.ALPHA: "64", Arch.IA64: "64", Arch.RISCV64: "64",
    Arch.I386: "32", Arch.ARM: "32", Arch.MIPS: "32", Arch.S390: "32",
    Arch.POWERPC: "32", Arch.RISCV: "32",
}
ARCH_FAMILY = {
    Arch.X86_64: "x86", Arch.I386: "x86",
    Arch.AARCH64: "arm", Arch.ARM: "arm",
    Arch.POWERPC: "power", Arch.POWERPC64: "power",
    Arch.MIPS: "mips", Arch.MIPS64: "mips",
    Arch.S390: "s390", Arch.S390X: "s390",
    Arch.RISCV: "riscv", Arch.RISCV64: "riscv",
}
LITTLE_ENDIAN = frozenset({
    Arch.X86_64, Arch.I386, Arch.AARCH64, Arch.ARM, Arch.MIPS, Arch.MIPS64,
    Arch.S390, Arch.S390X, Arch.POWERPC64, Arch.RISCV, Arch.RISCV64,
})
BIG_ENDIAN = frozenset({Arch.POWERPC, Arch.SPARC})
ARCH_ISA = {
    Arch.X86_64: "x86-64",
    Arch.I386: "x86",
    Arch.AARCH64: "ARMv8-A",
    Arch.ARM: "ARMv7",
    Arch.RISCV64: "RV64I/RV32I",
    Arch.RISCV: "RV64I/RV32I",
}

TERMUX_TMP = "/data/data/com.termux/files/usr/tmp"


def current_snapshot(detector: Optional[RuntimeDetector] = None) -> DetectionSnapshot:
    """Return the committed snapshot, detecting first when auto_detect is on.

    Raises:
        NotDetectedError: If nothing was detected and auto_detect is off.
    """
    detector = detector or get_detector()
    if not detector.available():
        raise NotDetectedError()
    snapshot = detector.snapshot
    if snapshot is None:
        raise NotDetectedError()
    return snapshot


def _active_labels(snapshot: DetectionSnapshot) -> List[str]:
    return [label for name, label in FLAG_LABELS if getattr(snapshot, name)]


def _kernel_summary(snapshot: DetectionSnapshot) -> str:
    return (
        f"{snapshot.platform.value}/{snapshot.architecture.value} "
        f"({snapshot.kernel} {snapshot.kernel_release})"
    )


def summary(detector: Optional[RuntimeDetector] = None) -> str:
    """Return "platform/arch"."""
    snapshot = current_snapshot(detector)
    return f"{snapshot.platform.value}/{snapshot.architecture.value}"


def to_json(snapshot: DetectionSnapshot, json_bool: bool = False, cache_ttl: int = 0) -> str:
    """Render a snapshot as the JSON document served by info("json").

    Args:
        snapshot: Snapshot to render.
        json_bool: Render flags as true/false instead of 1/0.
        cache_ttl: TTL reported in the metadata block.

    Returns:
        Indented JSON text.
    """
    flags = {
        name: value if json_bool else int(value)
        for name, value in snapshot.flags().items()
    }
    document = {
        "platform": snapshot.platform.value,
        "architecture": snapshot.architecture.value,
        "kernel": snapshot.kernel,
        "kernel_release": snapshot.kernel_release,
        "kernel_version": snapshot.kernel_version,
        "hostname": snapshot.hostname,
        "username": snapshot.username,
        "distro": snapshot.distro,
        "distro_version": snapshot.distro_version,
        "distro_codename": snapshot.distro_codename,
        "flags": flags,
        "metadata": {
            "version": __version__,
            "api_version": API_VERSION,
            "cache_ttl": cache_ttl,
            "detected_at": int(snapshot.detected_at),
        },
    }
    return json.dumps(document, indent=2)


def info(kind: str = "summary", detector: Optional[RuntimeDetector] = None) -> str:
    """Return one formatted view of the detected facts.

    Args:
        kind: One of summary|short, full|detailed, extended, distro,
            hostname, username, flags, json, version, api-version.
        detector: Detector to query. Defaults to the process-wide one.

    Returns:
        The formatted view.

    Raises:
        NotDetectedError: If nothing was detected and auto_detect is off.
        UnknownQueryError: If kind is not recognized.
    """
    detector = detector or get_detector()
    snapshot = current_snapshot(detector)

    if kind in ("summary", "short"):
        return f"{snapshot.platform.value}/{snapshot.architecture.value}"
    if kind in ("full", "detailed"):
        return _kernel_summary(snapshot)
    if kind == "extended":
        return f"{_kernel_summary(snapshot)} [{','.join(_active_labels(snapshot))}]"
    if kind == "distro":
        if not (snapshot.is_linux or snapshot.is_macos):
            return "N/A"
        text = f"{snapshot.distro} {snapshot.distro_version}"
        if snapshot.distro_codename != UNKNOWN:
            text += f" ({snapshot.distro_codename})"
        return text
    if kind == "hostname":
        return snapshot.hostname
    if kind == "username":
        return snapshot.username
    if kind == "flags":
        return ",".join(_active_labels(snapshot))
    if kind == "json":
        return to_json(snapshot, detector.config.json_bool, detector.config.cache_ttl)
    if kind == "version":
        return __version__
    if kind == "api-version":
        return API_VERSION

    logger.error(f"Unknown info type: {kind}")
    raise UnknownQueryError("info type", kind, INFO_KINDS)


def is_(target: str, detector: Optional[RuntimeDetector] = None) -> bool:
    """Answer a yes/no question about the host.

    Raises:
        NotDetectedError: If nothing was detected and auto_detect is off.
        UnknownQueryError: If target is not recognized.
    """
    snapshot = current_snapshot(detector)
    key = target.lower()

    if key in ("macos", "darwin", "mac"):
        return snapshot.is_macos
    if key == "windows":
        return snapshot.platform == Platform.WINDOWS
    if key == "bare-metal":
        return not (snapshot.is_vm or snapshot.is_container or snapshot.is_wsl)
    flag = f"is_{key}"
    if key in IS_TARGETS and flag in FLAG_ORDER:
        return getattr(snapshot, flag)

    logger.error(f"Unknown platform target: {target}")
    raise UnknownQueryError("platform target", target, IS_TARGETS)


def arch_info(query: str = "name", detector: Optional[RuntimeDetector] = None) -> str:
    """Describe the detected architecture.

    Args:
        query: One of name, bits, family, endian, instruction-set|isa.
        detector: Detector to query. Defaults to the process-wide one.

    Raises:
        NotDetectedError: If nothing was detected and auto_detect is off.
        UnknownQueryError: If query is not recognized.
    """
    arch = current_snapshot(detector).architecture

    if query == "name":
        return arch.value
    if query == "bits":
        return ARCH_BITS.get(arch, UNKNOWN)
    if query == "family":
        return ARCH_FAMILY.get(arch, arch.value)
    if query == "endian":
        if arch in LITTLE_ENDIAN:
            return "little"
        if arch in BIG_ENDIAN:
            return "big"
        return UNKNOWN
    if query in ("instruction-set", "isa"):
        return ARCH_ISA.get(arch, arch.value)

    raise UnknownQueryError("arch query", query, ARCH_QUERIES)


def paths(kind: str = "temp", detector: Optional[RuntimeDetector] = None) -> str:
    """Return a platform-appropriate directory.

    Args:
        kind: One of temp|tmp, config, cache, data, runtime, home.
        detector: Detector to query. Defaults to the process-wide one.

    Raises:
        NotDetectedError: If nothing was detected and auto_detect is off.
        UnknownQueryError: If kind is not recognized.
    """
    detector = detector or get_detector()
    snapshot = current_snapshot(detector)

    def env(name: str) -> str:
        return detector.environ.get(name, "") or ""

    home = env("HOME")

    if kind in ("temp", "tmp"):
        if snapshot.is_termux and not snapshot.is_macos:
            return env("TMPDIR") or TERMUX_TMP
        return env("TMPDIR") or "/tmp"
    if kind == "runtime":
        return (env("XDG_RUNTIME_DIR") or "/tmp") if snapshot.is_unix else "/tmp"
    if kind == "home":
        return home

    # macOS, Termux, XDG (other Unix), then plain $HOME
    layouts: Dict[str, Tuple[str, str, str]] = {
        "config": ("Library/Preferences", ".config", "XDG_CONFIG_HOME"),
        "cache": ("Library/Caches", ".cache", "XDG_CACHE_HOME"),
        "data": ("Library/Application Support", ".local/share", "XDG_DATA_HOME"),
    }
    if kind not in layouts:
        logger.error(f"Unknown path type: {kind}")
        raise UnknownQueryError("path type", kind, PATH_KINDS)

    macos_dir, unix_dir, xdg_var = layouts[kind]
    if snapshot.is_macos:
        return f"{home}/{macos_dir}"
    if snapshot.is_termux:
        return f"{home}/{unix_dir}"
    if snapshot.is_unix:
        return env(xdg_var) or f"{home}/{unix_dir}"
    return home


def status(detector: Optional[RuntimeDetector] = None) -> Dict[str, object]:
    """Describe module version, detection state, mode flags and cache age."""
    detector = detector or get_detector()
    result = detector.status()
    result["api_version"] = API_VERSION
    snapshot = detector.snapshot
    result["summary"] = (
        f"{snapshot.platform.value}/{snapshot.architecture.value}" if snapshot else None
    )
    return result
