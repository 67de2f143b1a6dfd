"""Command resolution against a static whitelist.

The resolver is the only place where a logical command name turns into an
executable path. Names outside WHITELIST_COMMANDS never touch the filesystem,
and candidate paths are used verbatim: there is no PATH search and no glob
expansion.
"""
import logging
import os
import threading
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class _NotFound:
    """Sentinel for a command with no executable candidate."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()

ResolveResult = Union[str, _NotFound]

_GNUBIN = "/opt/homebrew/opt/coreutils/libexec/gnubin"
_NIX = "/run/current-system/sw/bin"


def _candidates(name: str, *, brew: bool = True, local: bool = True, gnubin: bool = True, nix: bool = True) -> Tuple[str, ...]:
    paths = [f"/bin/{name}", f"/usr/bin/{name}"]
    if brew:
        paths.append(f"/opt/homebrew/bin/{name}")
    if local:
        paths.append(f"/usr/local/bin/{name}")
    if gnubin:
        paths.append(f"{_GNUBIN}/{name}")
    if nix:
        paths.append(f"{_NIX}/{name}")
    return tuple(paths)


WHITELIST_COMMANDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "uname": ("/bin/uname", "/usr/bin/uname", f"{_GNUBIN}/uname", f"{_NIX}/uname"),
    "hostname": _candidates("hostname", gnubin=False),
    "date": _candidates("date", gnubin=False),
    "stat": _candidates("stat"),
    "head": _candidates("head"),
    "wc": _candidates("wc"),
    "systemd-detect-virt": _candidates("systemd-detect-virt", brew=False, local=False, gnubin=False),
    "system_profiler": ("/usr/sbin/system_profiler",),
    "id": _candidates("id"),
    "whoami": _candidates("whoami"),
    "mktemp": _candidates("mktemp"),
    "dd": _candidates("dd"),
    "timeout": _candidates("timeout", gnubin=False),
    "cat": _candidates("cat"),
    "sw_vers": ("/usr/bin/sw_vers",),
    "plutil": ("/usr/bin/plutil",),
    "lsb_release": ("/usr/bin/lsb_release", "/bin/lsb_release", f"{_NIX}/lsb_release"),
    "grep": _candidates("grep", gnubin=False),
})


def is_executable_file(path: str) -> bool:
    """Check that a path is an existing, executable regular file."""
    return os.path.isfile(path) and os.access(path, os.X_OK)


class CommandResolver:
    """Maps whitelisted command names to verified absolute paths, memoized."""

    def __init__(
        self,
        whitelist: Optional[Mapping[str, Tuple[str, ...]]] = None,
        is_executable: Callable[[str], bool] = is_executable_file,
    ):
        """Initialize the resolver.

        Args:
            whitelist: Command table to resolve against. Defaults to WHITELIST_COMMANDS.
            is_executable: Filesystem predicate used for every candidate check.
        """
        self.whitelist = WHITELIST_COMMANDS if whitelist is None else MappingProxyType(dict(whitelist))
        self._is_executable = is_executable
        self._cache: Dict[str, ResolveResult] = {}
        self._lock = threading.Lock()
        self.probe_count = 0

    def is_allowed(self, name: str) -> bool:
        """Check whether a name is in the whitelist."""
        return name in self.whitelist

    def _check(self, path: str) -> bool:
        self.probe_count += 1
        return self._is_executable(path)

    def resolve(self, name: str) -> ResolveResult:
        """Resolve a whitelisted command name to an executable path.

        Args:
            name: Logical command name, e.g. "uname".

        Returns:
            Absolute path of the first executable candidate, or NOT_FOUND.
        """
        candidates = self.whitelist.get(name)
        if candidates is None:
            logger.debug(f"Command not allowed: {name}")
            return NOT_FOUND

        with self._lock:
            cached = self._cache.get(name)
            if cached is NOT_FOUND:
                return NOT_FOUND
            if cached is not None:
                if self._check(cached):  # type: ignore[arg-type]
                    return cached
                logger.debug(f"Cached path for {name} no longer executable: {cached}")
                del self._cache[name]

            for candidate in candidates:
                if self._check(candidate):
                    self._cache[name] = candidate
                    return candidate

            logger.debug(f"No executable candidate for {name}")
            self._cache[name] = NOT_FOUND
            return NOT_FOUND

    def available(self, name: str) -> bool:
        """Check whether a whitelisted command resolves on this host."""
        return self.resolve(name) is not NOT_FOUND

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one cached resolution, or all of them."""
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)

    def cached(self) -> Dict[str, ResolveResult]:
        """Return a copy of the resolution cache."""
        with self._lock:
            return dict(self._cache)
