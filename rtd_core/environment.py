"""Environment sub-detectors: hostname, user, WSL, container, chroot and session facts."""
import logging
from typing import Callable, Iterable, Iterator, List, Optional

from .platform import Platform
from .probes import HostProbes
from .utils import is_valid_hostname, sanitize_hostname, strip_control

logger = logging.getLogger(__name__)

HOSTNAME_ENV_VARS = ("HOST", "HOSTNAME", "COMPUTERNAME")
HOSTNAME_FILES = ("/etc/hostname", "/proc/sys/kernel/hostname", "/etc/nodename", "/etc/myname")
HOSTNAME_FALLBACK = "localhost"

WSL_ENV_VARS = ("WSL_DISTRO_NAME", "WSLENV", "WSL_INTEROP", "WSL2_INTEROP")
WSL_INTEROP_FILE = "/proc/sys/fs/binfmt_misc/WSLInterop"
WSL_DRIVE_MOUNTS = ("/mnt/c", "/mnt/d", "/mnt/e")
WSL_MARKERS = ("microsoft", "wsl")

CONTAINER_MARKER_FILES = ("/.dockerenv", "/.containerenv")
CONTAINER_ENV_VARS = ("container", "KUBERNETES_SERVICE_HOST", "DOCKER_CONTAINER", "PODMAN_CONTAINER")
CGROUP_MARKERS = ("docker", "lxc", "kubepods", "containerd", "podman", "crio")
MOUNTINFO_MARKERS = ("overlay", "aufs", "devicemapper")

TERMUX_DATA_DIR = "/data/data/com.termux"

CI_ENV_VARS = (
    "CI",
    "CONTINUOUS_INTEGRATION",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "TRAVIS",
    "CIRCLECI",
    "JENKINS_URL",
    "BUILDKITE",
    "APPVEYOR",
)
SSH_ENV_VARS = ("SSH_CLIENT", "SSH_TTY", "SSH_CONNECTION")

Source = Callable[[], Optional[str]]


def first_result(sources: Iterable[Source]) -> Optional[str]:
    """Return the first non-empty result of an ordered list of probes."""
    for source in sources:
        value = source()
        if value:
            return value
    return None


def any_env(probes: HostProbes, names: Iterable[str]) -> bool:
    return any(probes.env(name) for name in names)


def _env_hostname(probes: HostProbes, name: str) -> Optional[str]:
    value = probes.env(name)
    if value[:1].isascii() and value[:1].isalnum():
        return value
    return None


def hostname_sources(probes: HostProbes) -> List[Source]:
    """Ordered hostname candidates, most trusted first."""
    sources: List[Source] = []
    for name in HOSTNAME_ENV_VARS:
        sources.append(lambda name=name: _env_hostname(probes, name))
    sources.append(lambda: probes.run("hostname", "-s"))
    sources.append(lambda: probes.run("hostname"))
    sources.append(lambda: probes.run("uname", "-n"))
    for path in HOSTNAME_FILES:
        sources.append(lambda path=path: probes.read(path, 256))
    return sources


def _hostname_candidates(probes: HostProbes) -> Iterator[str]:
    for source in hostname_sources(probes):
        raw = source()
        if raw:
            yield sanitize_hostname(raw)


def resolve_hostname(probes: HostProbes) -> str:
    """Return the first usable sanitized hostname, or "localhost"."""
    for host in _hostname_candidates(probes):
        if is_valid_hostname(host):
            return host
    return HOSTNAME_FALLBACK


def resolve_username(probes: HostProbes) -> str:
    user = first_result([
        lambda: strip_control(probes.run("whoami") or "").strip(),
        lambda: probes.env("USER"),
        lambda: probes.env("USERNAME"),
    ])
    return strip_control(user or "") or "unknown"


def _mentions_wsl(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in WSL_MARKERS)


def detect_wsl(probes: HostProbes, platform: Platform) -> bool:
    """Detect Windows Subsystem for Linux."""
    if platform != Platform.LINUX:
        return False
    if any_env(probes, WSL_ENV_VARS):
        return True
    if _mentions_wsl(probes.read("/proc/version", 1024)):
        return True
    if _mentions_wsl(probes.run("uname", "-r")):
        return True
    if probes.exists(WSL_INTEROP_FILE):
        return True
    return any(
        probes.is_dir(mount) and probes.exists(f"{mount}/Windows/System32")
        for mount in WSL_DRIVE_MOUNTS
    )


def _contains_any(text: Optional[str], markers: Iterable[str]) -> bool:
    return bool(text) and any(marker in text for marker in markers)  # type: ignore[operator]


def detect_container(probes: HostProbes) -> bool:
    """Detect Docker, Podman, LXC, Kubernetes and similar containers."""
    if any(probes.exists(path) for path in CONTAINER_MARKER_FILES):
        return True
    if any_env(probes, CONTAINER_ENV_VARS):
        return True
    if (probes.read("/run/systemd/container", 64) or "").strip():
        return True
    if _contains_any(probes.read("/proc/1/cgroup", 8192), CGROUP_MARKERS):
        return True
    if _contains_any(probes.read("/proc/self/mountinfo", 16384), MOUNTINFO_MARKERS):
        return True
    if probes.can_stat():
        root_dev = probes.device_id("/")
        init_dev = probes.device_id("/proc/1/root")
        if root_dev is not None and init_dev is not None and root_dev != init_dev:
            return True
    return False


def detect_chroot(probes: HostProbes, platform: Platform, is_container: bool) -> bool:
    """Detect a changed root by comparing inodes of / and init's root."""
    if platform != Platform.LINUX or is_container or not probes.can_stat():
        return False
    root_inode = probes.inode("/")
    init_inode = probes.inode("/proc/1/root")
    return root_inode is not None and init_inode is not None and root_inode != init_inode


def detect_termux(probes: HostProbes) -> bool:
    if probes.env("TERMUX_VERSION"):
        return True
    files = f"{TERMUX_DATA_DIR}/files"
    return probes.is_dir(TERMUX_DATA_DIR) and probes.is_readable(files) and probes.has_entries(files)


def detect_ci(probes: HostProbes) -> bool:
    return any_env(probes, CI_ENV_VARS)


def detect_ssh(probes: HostProbes) -> bool:
    return any_env(probes, SSH_ENV_VARS)


def detect_root(probes: HostProbes) -> bool:
    return probes.euid() == 0
