"""
Execution state persistence for bootstrap scripts.

Records which scripts have completed successfully so a later run can
resume where the previous one stopped. This module provides:

- Resume decisions: ``has_succeeded(key)`` is true iff the latest entry
  for the key is ``success``
- Atomic updates: every mutation rewrites the file through a temporary
  file and ``os.replace``, fsynced before the rename
- Locking: mutations hold an exclusive advisory lock on a sibling
  ``.lock`` file and re-read the file under the lock

State is stored as line-delimited JSON::

    {"key": "foundation/init-nextjs.sh", "status": "success", "timestamp": "..."}

Files written by the bash bootstrapper (``key=success:timestamp`` lines)
are read transparently and converted on the next write. Blank lines are
ignored, unparsable lines are logged and skipped, and when a key appears
more than once the last occurrence wins.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Dict, Generator, List, Optional, Tuple, Union

from omniforge.errors import StateCorruptionError

logger = logging.getLogger(__name__)

__all__ = [
    "EntryStatus",
    "StateEntry",
    "ExecutionStateStore",
    "file_lock",
    "parse_state_line",
    "parse_state",
]


# Cross-platform file locking
if sys.platform == "win32":
    import msvcrt

    def _lock_file(f: IO, exclusive: bool = True) -> None:
        """Lock file on Windows."""
        msvcrt.locking(f.fileno(), msvcrt.LK_LOCK if exclusive else msvcrt.LK_RLCK, 1)

    def _unlock_file(f: IO) -> None:
        """Unlock file on Windows."""
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _lock_file(f: IO, exclusive: bool = True) -> None:
        """Lock file on Unix."""
        fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)

    def _unlock_file(f: IO) -> None:
        """Unlock file on Unix."""
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def file_lock(path: Path, exclusive: bool = True) -> Generator[IO, None, None]:
    """
    Context manager for file locking.

    Creates a lock file adjacent to the target file and acquires a lock on it.

    Args:
        path: Path to the file being protected
        exclusive: If True, acquire exclusive (write) lock; otherwise shared (read) lock
    """
    lock_path = path.with_name(path.name + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.touch(exist_ok=True)

    lock_file = open(lock_path, "r+")
    try:
        _lock_file(lock_file, exclusive)
        yield lock_file
    finally:
        try:
            _unlock_file(lock_file)
        except OSError as e:
            logger.debug("Failed to release lock %s: %s", lock_path, e)
        finally:
            lock_file.close()


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry so a completed rename survives power loss (POSIX only)."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class EntryStatus(str, Enum):
    """Recorded status values."""

    SUCCESS = "success"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StateEntry:
    """One persisted record for a script key."""

    key: str
    status: str
    timestamp: str

    @property
    def succeeded(self) -> bool:
        return self.status == EntryStatus.SUCCESS.value

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "status": self.status, "timestamp": self.timestamp}

    def to_line(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=False)


def parse_state_line(line: str, line_no: int = 0) -> Optional[StateEntry]:
    """
    Parse one persisted line.

    Returns None for blank lines. Raises ``StateCorruptionError`` when the
    line is neither a JSON record nor a ``key=status:timestamp`` record.
    """
    text = line.strip()
    if not text:
        return None

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            raise StateCorruptionError(line_no, line) from None
        if not isinstance(data, dict):
            raise StateCorruptionError(line_no, line)
        key = data.get("key")
        status = data.get("status")
        if not isinstance(key, str) or not key or not isinstance(status, str) or not status:
            raise StateCorruptionError(line_no, line)
        return StateEntry(key=key, status=status, timestamp=str(data.get("timestamp") or ""))

    # Legacy format; the timestamp itself contains colons.
    key, sep, rest = text.partition("=")
    status, _, timestamp = rest.partition(":")
    if not sep or not key.strip() or not status.strip():
        raise StateCorruptionError(line_no, line)
    return StateEntry(key=key.strip(), status=status.strip(), timestamp=timestamp.strip())


def parse_state(text: str) -> Dict[str, StateEntry]:
    """Parse a whole state file; the last occurrence of a key wins."""
    entries: Dict[str, StateEntry] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        try:
            entry = parse_state_line(line, line_no)
        except StateCorruptionError as e:
            logger.warning("Skipping corrupt state entry: %s", e)
            continue
        if entry is None:
            continue
        # Re-insert so iteration order follows the latest write.
        entries.pop(entry.key, None)
        entries[entry.key] = entry
    return entries


class ExecutionStateStore:
    """
    Persistent key -> status map for bootstrap scripts.

    The file is read fully on first access and rewritten on each mutation.
    Each write is durable before the method returns.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Args:
            path: State file location
        """
        self.path = Path(path)
        self._entries: Optional[Dict[str, StateEntry]] = None

    # -- loading ----------------------------------------------------------

    @property
    def entries(self) -> Dict[str, StateEntry]:
        """Current entries, loading from disk if needed."""
        if self._entries is None:
            self._entries = self._read()
        return self._entries

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> Dict[str, StateEntry]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return parse_state(f.read())

    def reload(self) -> None:
        """Discard the in-memory copy and re-read from disk."""
        self._entries = self._read()

    # -- queries ----------------------------------------------------------

    def get(self, key: str) -> Optional[StateEntry]:
        return self.entries.get(key)

    def has_succeeded(self, key: str) -> bool:
        entry = self.entries.get(key)
        return entry is not None and entry.succeeded

    def list_completed(self) -> List[Tuple[str, str]]:
        """(key, timestamp) for every succeeded key, in write order."""
        return [(e.key, e.timestamp) for e in self.entries.values() if e.succeeded]

    def count(self) -> int:
        return sum(1 for e in self.entries.values() if e.succeeded)

    # -- mutations --------------------------------------------------------

    def mark_success(self, key: str) -> StateEntry:
        """Record ``key`` as succeeded with a fresh timestamp."""
        entry = StateEntry(key=key, status=EntryStatus.SUCCESS.value, timestamp=_now())

        def apply(entries: Dict[str, StateEntry]) -> None:
            entries.pop(key, None)
            entries[key] = entry

        self._mutate(apply)
        logger.debug("Marked success: %s", key)
        return entry

    def clear(self, key: str) -> bool:
        """
        Remove the entry for ``key``.

        Returns:
            True if an entry was removed
        """
        removed: List[StateEntry] = []

        def apply(entries: Dict[str, StateEntry]) -> None:
            entry = entries.pop(key, None)
            if entry is not None:
                removed.append(entry)

        self._mutate(apply)
        if removed:
            logger.info("Cleared state for: %s", key)
        return bool(removed)

    def clear_all(self) -> None:
        """Remove the state file entirely."""
        with file_lock(self.path):
            if self.path.exists():
                self.path.unlink()
            self._entries = {}
        logger.info("Cleared all bootstrap state")

    def _mutate(self, apply: Callable[[Dict[str, StateEntry]], None]) -> None:
        with file_lock(self.path):
            entries = self._read()
            apply(entries)
            self._write(entries)
            self._entries = entries

    def _write(self, entries: Dict[str, StateEntry]) -> None:
        """
        Write entries atomically.

        Uses temporary file + fsync + rename, then fsyncs the directory, so a
        crash leaves either the old or the new file. Sets file permissions to 600.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}-",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for entry in entries.values():
                    f.write(entry.to_line())
                    f.write("\n")
                f.flush()
                os.fsync(f.fileno())

            os.chmod(temp_path, 0o600)
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        _fsync_dir(self.path.parent)

    # -- reporting --------------------------------------------------------

    def summary(self) -> str:
        """Human-readable status of the store."""
        if not self.exists():
            return "No state file found. Bootstrap has not been run yet."

        completed = self.list_completed()
        lines = [
            "=== Bootstrap Status ===",
            "",
            f"State file: {self.path}",
            f"Completed scripts: {len(completed)}",
        ]
        if completed:
            lines.extend(["", "Completed:"])
            for key, timestamp in completed:
                lines.append(f"  ✓ {key} ({timestamp})")
        return "\n".join(lines)
