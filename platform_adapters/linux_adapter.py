"""Linux VM and distribution detection."""
import logging
import re
from typing import Optional, Tuple

from rtd_core.platform import Platform
from rtd_core.probes import HostProbes
from rtd_core.schemas import UNKNOWN, DistroInfo
from rtd_core.utils import extract_value

from .base import PlatformAdapter

logger = logging.getLogger(__name__)

DMI_DIR = "/sys/class/dmi/id"
DMI_FILES = (
    "product_name",
    "sys_vendor",
    "board_vendor",
    "bios_vendor",
    "product_version",
    "chassis_vendor",
)
# sysfs attributes report a page-sized st_size whatever their content
DMI_READ_SIZE = 4096
# Matched against lowercased DMI strings
DMI_VENDOR_MARKERS = (
    "vmware",
    "virtualbox",
    "qemu",
    "kvm",
    "xen",
    "hyper-v",
    "parallels",
    "bochs",
    "virtual",
    "innotek",
    "microsoft corporation",
    "bhyve",
)
# Matched case-sensitively against /proc/cpuinfo
CPUINFO_MARKERS = ("hypervisor", "QEMU", "VMware", "Virtual", "Xen", "KVM")
VM_MARKER_PATHS = ("/proc/vz", "/proc/xen", "/sys/bus/xen")

# Checked in order; the first readable marker file decides the distro id
LEGACY_RELEASE_FILES: Tuple[Tuple[str, str], ...] = (
    ("rhel", "/etc/redhat-release"),
    ("debian", "/etc/debian_version"),
    ("arch", "/etc/arch-release"),
    ("gentoo", "/etc/gentoo-release"),
    ("alpine", "/etc/alpine-release"),
    ("suse", "/etc/SuSE-release"),
    ("slackware", "/etc/slackware-version"),
    ("void", "/etc/void-release"),
    ("nixos", "/etc/NIXOS"),
    ("fedora", "/etc/fedora-release"),
    ("centos", "/etc/centos-release"),
    ("rocky", "/etc/rocky-release"),
    ("almalinux", "/etc/almalinux-release"),
    ("oracle", "/etc/oracle-release"),
    ("amazon", "/etc/system-release"),
)

VERSION_PATTERN = re.compile(r"([0-9]+(\.[0-9]+)*)")
CODENAME_PATTERN = re.compile(r"\(([^)]+)\)")

DISTRO_ALIASES = (
    (re.compile(r"(opensuse|suse|sles|leap|tumbleweed)"), "opensuse"),
    (re.compile(r"(red ?hat)"), "rhel"),
    (re.compile(r"alma linux"), "almalinux"),
    (re.compile(r"rocky linux"), "rocky"),
)


def read_dmi(probes: HostProbes, name: str) -> Optional[str]:
    """Read one /sys/class/dmi/id attribute."""
    return probes.read(f"{DMI_DIR}/{name}", DMI_READ_SIZE)


def normalize_distro(raw: str) -> str:
    """Fold distro aliases into canonical family names."""
    value = raw.strip().lower()
    if not value:
        return UNKNOWN
    for pattern, canonical in DISTRO_ALIASES:
        if pattern.match(value):
            return canonical
    return value


def parse_legacy_release(content: str) -> Tuple[str, str]:
    """Pull (version, codename) out of a legacy release file."""
    version = codename = UNKNOWN
    match = VERSION_PATTERN.search(content)
    if match:
        version = match.group(1)
    match = CODENAME_PATTERN.search(content)
    if match:
        codename = match.group(1)
    return version, codename


class LinuxAdapter(PlatformAdapter):
    platform = Platform.LINUX

    def detect_vm(self, probes: HostProbes) -> bool:
        for name in DMI_FILES:
            text = read_dmi(probes, name)
            if text and any(marker in text.lower() for marker in DMI_VENDOR_MARKERS):
                logger.debug(f"Hypervisor vendor in {name}: {text.strip()}")
                return True

        cpuinfo = probes.read("/proc/cpuinfo", 8192)
        if cpuinfo and any(marker in cpuinfo for marker in CPUINFO_MARKERS):
            return True

        if probes.has_command("systemd-detect-virt"):
            virt = probes.run("systemd-detect-virt")
            if virt and virt not in ("none", "unknown"):
                return True
            virt = probes.run("systemd-detect-virt", "--container")
            if virt and virt != "none":
                return True

        return any(probes.exists(path) for path in VM_MARKER_PATHS)

    def _from_lsb_release(self, probes: HostProbes) -> Optional[DistroInfo]:
        distro_id = probes.run_with_fallback("lsb_release", "-si")
        if not distro_id:
            return None
        info = DistroInfo(
            id=distro_id.lower(),
            version=probes.run_with_fallback("lsb_release", "-sr") or UNKNOWN,
            codename=probes.run_with_fallback("lsb_release", "-sc") or UNKNOWN,
        )
        logger.info(f"Linux distro from lsb_release: {info.id} {info.version} ({info.codename})")
        return info

    def _from_os_release(self, probes: HostProbes) -> Optional[DistroInfo]:
        content = probes.read("/etc/os-release", 8192)
        if not content:
            return None
        codename = extract_value(content, "VERSION_CODENAME") or extract_value(content, "UBUNTU_CODENAME")
        info = DistroInfo(
            id=extract_value(content, "ID") or UNKNOWN,
            version=extract_value(content, "VERSION_ID") or UNKNOWN,
            codename=codename or UNKNOWN,
        )
        logger.info(f"Linux distro from os-release: {info.id} {info.version} ({info.codename})")
        return info

    def _from_lsb_release_file(self, probes: HostProbes) -> Optional[DistroInfo]:
        content = probes.read("/etc/lsb-release", 4096)
        if not content:
            return None
        info = DistroInfo(
            id=extract_value(content, "DISTRIB_ID") or UNKNOWN,
            version=extract_value(content, "DISTRIB_RELEASE") or UNKNOWN,
            codename=extract_value(content, "DISTRIB_CODENAME") or UNKNOWN,
        )
        logger.info(f"Linux distro from lsb-release: {info.id} {info.version} ({info.codename})")
        return info

    def _from_legacy_files(self, probes: HostProbes) -> Optional[DistroInfo]:
        for distro_id, path in LEGACY_RELEASE_FILES:
            if not (probes.exists(path) and probes.is_readable(path)):
                continue
            version = codename = UNKNOWN
            content = probes.read(path, 512)
            if content:
                version, codename = parse_legacy_release(content)
            logger.info(f"Linux distro from {path}: {distro_id} {version} ({codename})")
            return DistroInfo(id=distro_id, version=version, codename=codename)
        return None

    def detect_distro(self, probes: HostProbes) -> DistroInfo:
        info = DistroInfo()
        for source in (
            self._from_lsb_release,
            self._from_os_release,
            self._from_lsb_release_file,
            self._from_legacy_files,
        ):
            found = source(probes)
            if found is not None:
                info = found
            if info.id != UNKNOWN:
                break

        return info.model_copy(update={"id": normalize_distro(info.id)})
