"""Unit tests for the snapshot schema and the cache manager."""
import os

import pytest
from pydantic import ValidationError as PydanticValidationError

from rtd_core.cache import CacheManager, CacheState, compute_signature
from rtd_core.platform import Arch, Platform
from rtd_core.schemas import (
    FLAG_ORDER,
    DetectionSnapshot,
    DistroInfo,
    EnvironmentFlags,
    KernelInfo,
    derived_flags,
)


def _snapshot(detected_at=1000.0, signature="sig", **kwargs):
    return DetectionSnapshot.build(
        platform=kwargs.pop("platform", Platform.LINUX),
        architecture=kwargs.pop("architecture", Arch.X86_64),
        kernel=KernelInfo(system="Linux", release="6.5.0"),
        hostname="buildbox",
        username="dev",
        distro=DistroInfo(id="ubuntu", version="22.04", codename="jammy"),
        flags=EnvironmentFlags(**kwargs),
        detected_at=detected_at,
        signature=signature,
    )


class TestSnapshot:
    """Tests for snapshot construction and consistency."""

    def test_build_computes_derived_flags(self):
        snapshot = _snapshot(is_ci=True)
        assert snapshot.is_linux
        assert snapshot.is_unix
        assert snapshot.is_x86_64
        assert not snapshot.is_macos
        assert not snapshot.is_bsd
        assert not snapshot.is_arm
        assert snapshot.is_ci
        assert snapshot.kernel == "Linux"
        assert snapshot.distro_codename == "jammy"

    def test_flags_in_display_order(self):
        flags = _snapshot().flags()
        assert tuple(flags) == FLAG_ORDER
        assert len(flags) == 15

    def test_inconsistent_snapshot_rejected(self):
        with pytest.raises(PydanticValidationError):
            DetectionSnapshot(platform=Platform.LINUX, architecture=Arch.X86_64, is_linux=False, is_unix=True, is_x86_64=True)

    def test_snapshot_is_immutable(self):
        snapshot = _snapshot()
        with pytest.raises(PydanticValidationError):
            snapshot.hostname = "other"

    @pytest.mark.parametrize("platform,arch,expected_true", [
        (Platform.DARWIN, Arch.AARCH64, {"is_macos", "is_unix", "is_arm"}),
        (Platform.FREEBSD, Arch.X86_64, {"is_bsd", "is_unix", "is_x86_64"}),
        (Platform.WINDOWS, Arch.I386, set()),
        (Platform.UNKNOWN, Arch.UNKNOWN, set()),
    ])
    def test_derived_flags(self, platform, arch, expected_true):
        flags = derived_flags(platform, arch)
        assert {name for name, value in flags.items() if value} == expected_true


class TestSignature:
    """Tests for the environment signature."""

    def test_layout(self):
        env = {"OSTYPE": "linux-gnu", "MACHTYPE": "x86_64-pc-linux-gnu", "HOSTTYPE": "x86_64"}
        signature = compute_signature(env, "0.1.0", uname=lambda: ("Linux", "x86_64"))
        assert signature == (
            f"linux-gnu:x86_64-pc-linux-gnu:x86_64:{os.geteuid()}:{os.getuid()}:0.1.0:Linux:x86_64"
        )

    def test_changes_with_ostype(self):
        uname = lambda: ("Linux", "x86_64")
        before = compute_signature({"OSTYPE": "linux-gnu"}, "0.1.0", uname)
        after = compute_signature({"OSTYPE": "linux-musl"}, "0.1.0", uname)
        assert before != after

    def test_changes_with_live_kernel(self):
        env = {"OSTYPE": "linux-gnu"}
        assert compute_signature(env, "1", lambda: ("Linux", "x86_64")) != compute_signature(
            env, "1", lambda: ("Linux", "aarch64")
        )


class TestCacheManager:
    """Tests for TTL, signature and version checks."""

    def test_empty_not_usable(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        assert cache.state == CacheState.EMPTY
        assert not cache.is_usable(0.0, "")
        assert cache.age(50.0) == 0.0

    def test_usable_within_ttl(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        cache.commit(_snapshot(detected_at=1000.0))

        assert cache.state == CacheState.VALID
        assert cache.committed_at == 1000.0
        assert cache.is_usable(1299.0, "sig")
        assert cache.age(1100.0) == 100.0

    def test_expired(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        cache.commit(_snapshot(detected_at=1000.0))
        assert not cache.is_usable(1300.0, "sig")

    def test_signature_mismatch(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        cache.commit(_snapshot(signature="a"))
        assert not cache.is_usable(1001.0, "b")

    def test_version_mismatch(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        cache.commit(_snapshot())
        cache.version = "0.2.0"
        assert not cache.is_usable(1001.0, "sig")

    def test_invalidate(self):
        cache = CacheManager(ttl=300, version="0.1.0")
        cache.commit(_snapshot())
        cache.invalidate()
        assert cache.state == CacheState.EMPTY
        assert cache.snapshot is None
        assert not cache.is_usable(1001.0, "sig")
