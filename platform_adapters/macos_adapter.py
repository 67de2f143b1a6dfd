import logging
import re
from typing import Optional, Tuple

from rtd_core.platform import Platform
from rtd_core.probes import HostProbes
from rtd_core.schemas import UNKNOWN, DistroInfo
from rtd_core.utils import strip_control

from .base import PlatformAdapter

logger = logging.getLogger(__name__)

SYSTEM_VERSION_PLIST = "/System/Library/CoreServices/SystemVersion.plist"
HARDWARE_VM_MARKERS = ("Virtual", "VMware", "Parallels", "VirtualBox")
GENERIC_CODENAME = "macOS"

MACOS_CODENAMES = {
    26: "Tahoe",
    15: "Sequoia",
    14: "Sonoma",
    13: "Ventura",
    12: "Monterey",
    11: "Big Sur",
}
# 10.x releases are keyed by minor version
MAC_OS_X_CODENAMES = {
    15: "Catalina",
    14: "Mojave",
    13: "High Sierra",
    12: "Sierra",
    11: "El Capitan",
    10: "Yosemite",
    9: "Mavericks",
    8: "Mountain Lion",
    7: "Lion",
    6: "Snow Leopard",
}

PLIST_LINE = re.compile(r'"(?P<key>\w+)"\s*=>\s*"(?P<value>[^"]*)"')


def macos_codename(version: str) -> str:
    """Map a product version such as "14.2.1" or "10.15.7" to its codename."""
    parts = version.split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else None
    except ValueError:
        return GENERIC_CODENAME

    if major == 10 and minor is not None:
        return MAC_OS_X_CODENAMES.get(minor, GENERIC_CODENAME)
    return MACOS_CODENAMES.get(major, GENERIC_CODENAME)


def parse_plutil_output(output: str) -> Tuple[Optional[str], Optional[str]]:
    """Extract (version, build) from `plutil -p` output."""
    values = {}
    for line in output.splitlines():
        match = PLIST_LINE.search(line)
        if match:
            values.setdefault(match.group("key"), match.group("value"))
    version = values.get("ProductUserVisibleVersion") or values.get("ProductVersion")
    return version, values.get("ProductBuildVersion")


class MacOSAdapter(PlatformAdapter):
    platform = Platform.DARWIN

    def detect_vm(self, probes: HostProbes) -> bool:
        if not probes.has_command("system_profiler"):
            return False
        hardware = probes.run("system_profiler", "SPHardwareDataType") or ""
        return any(marker in hardware for marker in HARDWARE_VM_MARKERS)

    def detect_distro(self, probes: HostProbes) -> DistroInfo:
        version = strip_control(probes.run_with_fallback("sw_vers", "-productVersion") or "") or UNKNOWN
        build = strip_control(probes.run_with_fallback("sw_vers", "-buildVersion") or "") or UNKNOWN
        if version != UNKNOWN:
            logger.info(f"macOS version from sw_vers: {version} ({build})")

        if version == UNKNOWN and probes.is_readable(SYSTEM_VERSION_PLIST):
            output = probes.run_with_fallback("plutil", "-p", SYSTEM_VERSION_PLIST)
            if output:
                plist_version, plist_build = parse_plutil_output(output)
                version = plist_version or UNKNOWN
                if build == UNKNOWN and plist_build:
                    build = plist_build
                logger.info(f"macOS version from plist: {version}, build: {build}")

        codename = macos_codename(version) if version != UNKNOWN else UNKNOWN
        return DistroInfo(id="macos", version=version, codename=codename)
