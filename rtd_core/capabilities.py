"""Capability lookup for operations with several possible implementations.

Each logical operation ("read_prefix", "file_size", ...) maps to an ordered
list of strategies. A strategy is usable when every command it requires
resolves through the whitelist; that availability check is done once per
process (until reset) and the usable strategies are tried in order until one
returns a result.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from .executor import SecureExecutor

logger = logging.getLogger(__name__)

READ_PREFIX = "read_prefix"
FILE_SIZE = "file_size"
DEVICE_ID = "device_id"
INODE = "inode"

IN_PROCESS_CHUNK = 512


@dataclass(frozen=True)
class Strategy:
    """One way of performing an operation."""

    name: str
    requires: Tuple[str, ...]
    func: Callable[..., Optional[Any]]


def _stdout_if_ok(executor: SecureExecutor, name: str, *args: str) -> Optional[str]:
    result = executor.run(name, args)
    return result.stdout if result.ok else None


def _int_or_none(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    text = text.strip()
    return int(text) if text.isdigit() else None


def _head_read(executor: SecureExecutor, path: str, max_bytes: int) -> Optional[str]:
    return _stdout_if_ok(executor, "head", "-c", str(max_bytes), path)


def _dd_read(executor: SecureExecutor, path: str, max_bytes: int) -> Optional[str]:
    return _stdout_if_ok(executor, "dd", f"if={path}", "bs=1", f"count={max_bytes}")


def read_in_process(executor: SecureExecutor, path: str, max_bytes: int) -> Optional[str]:
    """Read at most max_bytes from a file without any external tool."""
    chunks = []
    remaining = max_bytes
    try:
        with open(path, "rb") as f:
            while remaining > 0:
                chunk = f.read(min(IN_PROCESS_CHUNK, remaining))
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
    except OSError as e:
        logger.debug(f"In-process read failed for {path}: {e}")
        return None
    return b"".join(chunks).decode("utf-8", errors="replace")


def _stat_field(gnu_format: str, bsd_format: str) -> Tuple[Strategy, Strategy]:
    # -L: report the link target (/proc/1/root is a symlink), never the link itself
    def gnu(executor: SecureExecutor, path: str) -> Optional[int]:
        return _int_or_none(_stdout_if_ok(executor, "stat", "-L", "-c", gnu_format, path))

    def bsd(executor: SecureExecutor, path: str) -> Optional[int]:
        return _int_or_none(_stdout_if_ok(executor, "stat", "-L", "-f", bsd_format, path))

    return (
        Strategy("gnu-stat", ("stat",), gnu),
        Strategy("bsd-stat", ("stat",), bsd),
    )


DEFAULT_STRATEGIES: Mapping[str, Tuple[Strategy, ...]] = {
    READ_PREFIX: (
        Strategy("head", ("head",), _head_read),
        Strategy("dd", ("dd",), _dd_read),
        Strategy("in-process", (), read_in_process),
    ),
    FILE_SIZE: _stat_field("%s", "%z"),
    DEVICE_ID: _stat_field("%d", "%d"),
    INODE: _stat_field("%i", "%i"),
}


class CapabilityTable:
    """Selects and runs the available strategies for each operation."""

    def __init__(
        self,
        executor: SecureExecutor,
        strategies: Optional[Mapping[str, Sequence[Strategy]]] = None,
    ):
        self.executor = executor
        self._strategies = dict(DEFAULT_STRATEGIES if strategies is None else strategies)
        self._selected: Dict[str, Tuple[Strategy, ...]] = {}
        self._lock = threading.Lock()

    def select(self, operation: str) -> Tuple[Strategy, ...]:
        """Return the usable strategies for an operation, in preference order."""
        with self._lock:
            selected = self._selected.get(operation)
            if selected is None:
                resolver = self.executor.resolver
                selected = tuple(
                    s for s in self._strategies.get(operation, ())
                    if all(resolver.available(cmd) for cmd in s.requires)
                )
                self._selected[operation] = selected
                logger.debug(f"Capability {operation}: {[s.name for s in selected] or 'none'}")
            return selected

    def available(self, operation: str) -> bool:
        """Check whether any strategy can perform the operation."""
        return bool(self.select(operation))

    def call(self, operation: str, *args: Any) -> Optional[Any]:
        """Run the first strategy that produces a result.

        Returns:
            The strategy result, or None if no strategy succeeded.
        """
        for strategy in self.select(operation):
            result = strategy.func(self.executor, *args)
            if result is not None:
                return result
        return None

    def reset(self) -> None:
        """Forget memoized selections."""
        with self._lock:
            self._selected.clear()
