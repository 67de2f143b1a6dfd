"""Platform and architecture normalization.

This module is intentionally standalone with no dependencies on other RTD modules
to avoid circular imports between rtd_core and platform_adapters.

Raw signals (OSTYPE, uname -s, uname -m, HOSTTYPE, MACHTYPE, ...) are matched
against ordered pattern tables; the first matching pattern wins, so more
specific patterns are listed before the broader ones they overlap with.
"""
import re
from enum import Enum
from typing import Optional, Pattern, Sequence, Tuple


class Platform(str, Enum):
    """Canonical operating system families."""
    DARWIN = "darwin"
    LINUX = "linux"
    FREEBSD = "freebsd"
    OPENBSD = "openbsd"
    NETBSD = "netbsd"
    DRAGONFLY = "dragonfly"
    SOLARIS = "solaris"
    WINDOWS = "windows"
    AIX = "aix"
    HPUX = "hpux"
    HAIKU = "haiku"
    QNX = "qnx"
    MINIX = "minix"
    UNKNOWN = "unknown"


class Arch(str, Enum):
    """Canonical CPU architectures."""
    X86_64 = "x86_64"
    I386 = "i386"
    AARCH64 = "aarch64"
    ARM = "arm"
    POWERPC = "powerpc"
    POWERPC64 = "powerpc64"
    MIPS = "mips"
    MIPS64 = "mips64"
    RISCV = "riscv"
    RISCV64 = "riscv64"
    S390 = "s390"
    S390X = "s390x"
    LOONGARCH = "loongarch"
    SPARC = "sparc"
    ALPHA = "alpha"
    IA64 = "ia64"
    UNKNOWN = "unknown"


BSD_PLATFORMS = frozenset({Platform.FREEBSD, Platform.OPENBSD, Platform.NETBSD, Platform.DRAGONFLY})
ARM_ARCHES = frozenset({Arch.ARM, Arch.AARCH64})

PatternTable = Sequence[Tuple[Pattern[str], Enum]]


def _table(*rows: Tuple[str, Enum]) -> Tuple[Tuple[Pattern[str], Enum], ...]:
    return tuple((re.compile(pattern), value) for pattern, value in rows)


# Prefix patterns matched against the lowercased signal
PLATFORM_PATTERNS = _table(
    (r"(darwin|macos)", Platform.DARWIN),
    (r"(linux|gnu)", Platform.LINUX),
    (r"freebsd", Platform.FREEBSD),
    (r"openbsd", Platform.OPENBSD),
    (r"netbsd", Platform.NETBSD),
    (r"dragonfly", Platform.DRAGONFLY),
    (r"(solaris|sunos|illumos)", Platform.SOLARIS),
    (r"(cygwin|msys|mingw|windows)", Platform.WINDOWS),
    (r"aix", Platform.AIX),
    (r"(hpux|hp-ux)", Platform.HPUX),
    (r"haiku", Platform.HAIKU),
    (r"qnx", Platform.QNX),
    (r"minix", Platform.MINIX),
)

# Full-match patterns against the lowercased signal, truncated at the first "-"
ARCH_PATTERNS = _table(
    (r"x86_64h?|amd64|x64", Arch.X86_64),
    (r"i[3-6]86|i86pc|x86", Arch.I386),
    (r"arm64.*|aarch64|arm64v8", Arch.AARCH64),
    (r"armv[4-8].*|armhf", Arch.ARM),
    (r"ppc64(le)?", Arch.POWERPC64),
    (r"(powerpc|power).*|ppc", Arch.POWERPC),
    (r"mips64(el)?", Arch.MIPS64),
    (r"mips.*", Arch.MIPS),
    (r"riscv64", Arch.RISCV64),
    (r"riscv.*", Arch.RISCV),
    (r"s390x", Arch.S390X),
    (r"s390.*", Arch.S390),
    (r"loongarch.*|loong64", Arch.LOONGARCH),
    (r"(sparc|sun4).*", Arch.SPARC),
    (r"alpha.*", Arch.ALPHA),
    (r"ia64", Arch.IA64),
)


def normalize_platform(raw: Optional[str]) -> Platform:
    """Map a raw OS signal (OSTYPE, uname -s) to a Platform.

    Args:
        raw: Raw signal such as "Darwin", "linux-gnu" or "FreeBSD13.2".

    Returns:
        The canonical Platform, or Platform.UNKNOWN.
    """
    value = (raw or "").strip().lower()
    if not value:
        return Platform.UNKNOWN
    for pattern, platform in PLATFORM_PATTERNS:
        if pattern.match(value):
            return platform  # type: ignore[return-value]
    return Platform.UNKNOWN


def normalize_arch(raw: Optional[str]) -> Arch:
    """Map a raw machine signal (uname -m, HOSTTYPE, MACHTYPE) to an Arch.

    Args:
        raw: Raw signal such as "arm64", "amd64" or "x86_64-pc-linux-gnu".

    Returns:
        The canonical Arch, or Arch.UNKNOWN.
    """
    original = (raw or "").strip().lower()
    value = original.split("-", 1)[0]
    if not value:
        return Arch.UNKNOWN

    # A bare "arm" CPU type on a 64-bit MACHTYPE
    if value == "arm":
        if "aarch64" in original or "arm64" in original:
            return Arch.AARCH64
        return Arch.ARM

    for pattern, arch in ARCH_PATTERNS:
        if pattern.fullmatch(value):
            return arch  # type: ignore[return-value]
    return Arch.UNKNOWN


def strip_version_suffix(ostype: str) -> str:
    """Drop everything from the first digit on ("darwin23.0" -> "darwin")."""
    match = re.match(r"[^0-9]*", ostype)
    return match.group(0) if match else ostype


def is_bsd(platform: Platform) -> bool:
    """Check if the platform is one of the BSD family."""
    return platform in BSD_PLATFORMS


def is_unix(platform: Platform) -> bool:
    """Check if the platform is Unix-like."""
    return platform not in (Platform.WINDOWS, Platform.UNKNOWN)


def is_arm(arch: Arch) -> bool:
    """Check if the architecture is ARM (32 or 64 bit)."""
    return arch in ARM_ARCHES
