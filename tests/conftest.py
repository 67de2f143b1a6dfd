"""Shared fixtures: a scriptable fake host and global state resets."""
from typing import Dict, Iterable, Optional, Tuple

import pytest

from rtd_core.config import reset_config
from rtd_core.detector import reset_detector
from platform_adapters import reset_adapter


UBUNTU_OS_RELEASE = """\
PRETTY_NAME="Ubuntu 22.04.3 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
VERSION="22.04.3 LTS (Jammy Jellyfish)"
VERSION_CODENAME=jammy
ID=ubuntu
ID_LIKE=debian
UBUNTU_CODENAME=jammy
"""


class FakeProbes:
    """In-memory stand-in for HostProbes.

    Commands are keyed by (name, *args); files by path. Every command call
    is recorded in `calls`.
    """

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        commands: Optional[Dict[Tuple[str, ...], str]] = None,
        files: Optional[Dict[str, str]] = None,
        dirs: Iterable[str] = (),
        euid: int = 1000,
        interactive: bool = False,
        stat: Optional[Dict[Tuple[str, str], int]] = None,
        unsandboxed: Optional[Dict[Tuple[str, ...], str]] = None,
    ):
        self.environ = dict(env or {})
        self.commands = dict(commands or {})
        self.files = dict(files or {})
        self.dirs = set(dirs)
        self._euid = euid
        self.interactive = interactive
        self.stat = dict(stat or {})
        self.unsandboxed = dict(unsandboxed or {})
        self.calls = []
        self.resets = 0

    def env(self, name):
        return self.environ.get(name, "") or ""

    def has_command(self, name):
        return any(key[0] == name for key in self.commands)

    def run(self, name, *args):
        self.calls.append((name, *args))
        return self.commands.get((name, *args))

    def run_unsandboxed(self, name, *args):
        return self.unsandboxed.get((name, *args))

    def run_with_fallback(self, name, *args):
        out = self.run(name, *args)
        if out is None:
            out = self.run_unsandboxed(name, *args)
        return out

    def read(self, path, max_bytes=None):
        content = self.files.get(path)
        if content is None:
            return None
        return content[:max_bytes] if max_bytes else content

    def exists(self, path):
        return path in self.files or path in self.dirs

    def is_dir(self, path):
        return path in self.dirs

    def is_readable(self, path):
        return self.exists(path)

    def has_entries(self, path):
        prefix = path.rstrip("/") + "/"
        return any(p.startswith(prefix) for p in list(self.files) + list(self.dirs))

    def can_stat(self):
        return bool(self.stat)

    def device_id(self, path):
        return self.stat.get(("device", path))

    def inode(self, path):
        return self.stat.get(("inode", path))

    def euid(self):
        return self._euid

    def is_interactive(self):
        return self.interactive

    def reset(self):
        self.resets += 1


def ubuntu_host(**overrides) -> FakeProbes:
    """A plain Ubuntu 22.04 x86_64 workstation."""
    params = dict(
        env={"OSTYPE": "linux-gnu", "HOSTTYPE": "x86_64", "HOME": "/home/dev", "USER": "dev"},
        commands={
            ("uname", "-s"): "Linux",
            ("uname", "-m"): "x86_64",
            ("uname", "-r"): "6.5.0-14-generic",
            ("uname", "-v"): "#14~22.04.1-Ubuntu SMP PREEMPT_DYNAMIC",
            ("uname", "-n"): "buildbox",
            ("uname", "-p"): "x86_64",
            ("hostname", "-s"): "buildbox",
            ("whoami",): "dev",
        },
        files={"/etc/os-release": UBUNTU_OS_RELEASE},
    )
    params.update(overrides)
    return FakeProbes(**params)


def macos_host(**overrides) -> FakeProbes:
    """An Apple silicon Mac on Sonoma."""
    params = dict(
        env={"OSTYPE": "darwin23.0", "HOSTTYPE": "arm64", "HOME": "/Users/dev", "USER": "dev"},
        commands={
            ("uname", "-s"): "Darwin",
            ("uname", "-m"): "arm64",
            ("uname", "-r"): "23.2.0",
            ("uname", "-v"): "Darwin Kernel Version 23.2.0",
            ("uname", "-n"): "Devs-MacBook-Pro.local",
            ("uname", "-p"): "arm",
            ("hostname", "-s"): "Devs-MacBook-Pro",
            ("whoami",): "dev",
            ("sw_vers", "-productVersion"): "14.2.1",
            ("sw_vers", "-buildVersion"): "23C71",
        },
    )
    params.update(overrides)
    return FakeProbes(**params)


@pytest.fixture
def fake_probes():
    """Factory for FakeProbes."""
    return FakeProbes


@pytest.fixture
def make_ubuntu():
    """Factory for Ubuntu hosts; keyword arguments replace FakeProbes fields."""
    return ubuntu_host


@pytest.fixture
def make_macos():
    """Factory for macOS hosts; keyword arguments replace FakeProbes fields."""
    return macos_host


@pytest.fixture
def ubuntu_probes():
    return ubuntu_host()


@pytest.fixture
def macos_probes():
    return macos_host()


@pytest.fixture(autouse=True)
def reset_globals():
    """Drop process-wide singletons between tests."""
    reset_config()
    reset_detector()
    reset_adapter()
    yield
    reset_detector()
    reset_config()
    reset_adapter()
