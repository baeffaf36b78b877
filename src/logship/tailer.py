"""Sequential directory tailer: read every log file in a directory, in mtime order.

``FileTailer(directory, checkpoint, whence=...)`` owns at most one open file
at a time.  ``read(size)`` returns bytes from it; when the file is exhausted
the tailer looks for the chronologically-next eligible file in the same
directory and switches to it without reporting end-of-stream to the caller.

Start position:

- a stored checkpoint ``(path, offset)`` always wins
- otherwise ``whence="oldest"`` starts at the earliest file, offset 0
- otherwise ``whence="newest"`` starts at the latest file, at end-of-file
- an empty directory is fine: the first ``read`` keeps looking for a file

End-of-stream is signalled by a short read (``b""`` when nothing was
available).  It is never terminal: calling ``read`` again later picks up
new data, new files, or both.  Only ``close()`` is terminal; afterwards
``read`` raises :class:`ReaderClosedError`.

On every file switch the finished path is appended to the checkpoint's
done-file log.  That append is retried until it succeeds, so downstream
garbage collection never misses a consumed file.  ``sync_meta()`` flushes
the ``(path, offset)`` cursor and is cheap to call after every read.

Typical usage::

    tailer = FileTailer.from_settings(settings.tail, "/var/log/app", checkpoint)
    while True:
        chunk = tailer.read(64 * 1024)
        if chunk:
            handle(chunk)
            tailer.sync_meta()

Only ``close()`` may be called from another thread.
"""

from __future__ import annotations

import errno
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Literal

from logship.checkpoint import Checkpoint, CheckpointError
from logship.config import TailSettings
from logship.discovery import (
    FileStat,
    IgnoreRules,
    file_identity,
    find_by_identity,
    newest_file,
    next_file_after,
    oldest_file,
    scan_directory,
    stat_file,
)
from logship.logging import get_logger, log_context
from logship.retry import RetryPolicy
from logship.rotation import Rotation, classify_rotation

Whence = Literal["oldest", "newest"]

WHENCE_OLDEST = "oldest"
WHENCE_NEWEST = "newest"

_log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TailerError(RuntimeError):
    """Base class for tailer errors."""


class ConfigurationError(TailerError):
    """The tailer cannot be constructed: bad directory or unsupported whence."""


class ReaderClosedError(TailerError):
    """``read`` was called on (or interrupted by) a closed tailer."""


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileCursor:
    """Position of the tailer: which file, which physical file, which byte."""

    directory: Path
    path: Path | None
    identity: int | None
    offset: int


# ---------------------------------------------------------------------------
# Tailer
# ---------------------------------------------------------------------------


class FileTailer:
    """Read all eligible files of one directory, oldest first, following rotation.

    Args:
        directory:       Directory to tail.  Must exist.
        checkpoint:      Store for the cursor and the done-file log.
        whence:          Start file when no checkpoint exists.
        rules:           Eligibility rules for file names.
        reopen_policy:   Pacing of attempts to open a file when none is open.
        vanished_policy: Pacing and bound for "current file vanished" retries.
        done_policy:     Pacing of done-file log appends.
        eof_delay:       Idle pause before an empty end-of-stream return.

    Raises:
        ConfigurationError: *directory* is not a readable directory, or
                            *whence* is unsupported.
    """

    def __init__(
        self,
        directory: str | Path,
        checkpoint: Checkpoint,
        *,
        whence: Whence = WHENCE_OLDEST,
        rules: IgnoreRules | None = None,
        reopen_policy: RetryPolicy | None = None,
        vanished_policy: RetryPolicy | None = None,
        done_policy: RetryPolicy | None = None,
        eof_delay: float = 0.5,
    ) -> None:
        if whence not in (WHENCE_OLDEST, WHENCE_NEWEST):
            raise ConfigurationError(f"unsupported whence {whence!r}; use 'oldest' or 'newest'")

        self._dir = _resolve_directory(directory)
        self._checkpoint = checkpoint
        self._rules = rules if rules is not None else IgnoreRules()
        self._reopen_policy = reopen_policy or RetryPolicy(delay=3.0)
        self._vanished_policy = vanished_policy or RetryPolicy(delay=0.1, max_attempts=3)
        self._done_policy = done_policy or RetryPolicy(delay=3.0)
        self._eof_delay = eof_delay

        self._stop = threading.Event()
        self._file: BinaryIO | None = None
        self._path: Path | None = None
        self._identity: int | None = None
        self._offset = 0
        self._last_sync: tuple[str, int] | None = None
        # Checkpointed file missing at start-up; its offset is kept until it
        # reappears or another file is opened.
        self._restore_pending = False

        with log_context(directory=str(self._dir)):
            self._start(whence)

    @classmethod
    def from_settings(
        cls,
        settings: TailSettings,
        directory: str | Path,
        checkpoint: Checkpoint,
    ) -> FileTailer:
        """Build a tailer from the ``[tail]`` settings section."""
        return cls(
            directory,
            checkpoint,
            whence=settings.whence,
            rules=IgnoreRules(
                ignore_hidden=settings.ignore_hidden,
                ignore_suffixes=tuple(settings.ignore_suffixes),
                valid_pattern=settings.valid_file_pattern,
            ),
            reopen_policy=RetryPolicy(delay=settings.reopen_delay),
            vanished_policy=RetryPolicy(
                delay=settings.vanished_delay, max_attempts=settings.vanished_retries
            ),
            done_policy=RetryPolicy(delay=settings.done_file_delay),
            eof_delay=settings.eof_delay,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return f"SeqFile:{self._dir}"

    @property
    def source(self) -> Path:
        return self._dir

    @property
    def cursor(self) -> FileCursor:
        return FileCursor(
            directory=self._dir,
            path=self._path,
            identity=self._identity,
            offset=self._offset,
        )

    @property
    def closed(self) -> bool:
        return self._stop.is_set()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _start(self, whence: Whence) -> None:
        restored = self._restore()
        offset: int | None
        if restored is not None:
            path, offset = restored
            self._last_sync = (str(path), offset)
        else:
            pick = oldest_file if whence == WHENCE_OLDEST else newest_file
            try:
                start = pick(self._dir, self._rules)
            except OSError as exc:
                raise ConfigurationError(f"{self._dir}: cannot list directory: {exc}") from exc
            if start is None:
                _log.info("no eligible file yet")
                return
            path = start.path
            offset = 0 if whence == WHENCE_OLDEST else None  # None → end of file

        self._path = path
        try:
            fh = open(path, "rb")
        except FileNotFoundError:
            _log.warning("start file is gone, will rescan", file=str(path), offset=offset or 0)
            self._offset = offset or 0
            self._restore_pending = True
            return

        try:
            st = os.fstat(fh.fileno())
            if offset is None:
                offset = st.st_size
            elif offset > st.st_size:
                _log.warning(
                    "checkpoint offset beyond end of file, restarting file",
                    file=str(path),
                    offset=offset,
                    size=st.st_size,
                )
                offset = 0
            fh.seek(offset)
        except OSError:
            fh.close()
            raise

        self._file = fh
        self._identity = file_identity(st)
        self._offset = offset
        _log.info("tailer started", file=str(path), offset=offset)

    def _restore(self) -> tuple[Path, int] | None:
        try:
            stored = self._checkpoint.read_offset()
        except CheckpointError as exc:
            _log.warning("checkpoint unreadable, starting fresh", error=str(exc))
            return None
        if stored is None:
            return None
        path, offset = stored
        _log.debug("checkpoint restored", file=path, offset=offset)
        return Path(path), offset

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, size: int) -> bytes:
        """Return up to *size* bytes, switching files as each one is exhausted.

        A short (possibly empty) result means end-of-stream for now.

        Raises:
            ReaderClosedError: The tailer was closed.
            OSError:           A read error other than end-of-file, when no
                               bytes were collected yet in this call.
        """
        with log_context(directory=str(self._dir)):
            return self._read(size)

    def _read(self, size: int) -> bytes:
        chunks: list[bytes] = []
        remaining = size
        vanished = 0

        while remaining > 0:
            fh = self._file
            if fh is None:
                if self._stop.is_set():
                    raise ReaderClosedError(f"reader {self.name} has been closed")
                if not self._reopen():
                    break
                continue

            try:
                data = fh.read(remaining)
            except ValueError:
                # close() released the handle under us.
                if self._stop.is_set():
                    raise ReaderClosedError(f"reader {self.name} has been closed") from None
                raise
            except OSError as exc:
                if not chunks:
                    raise
                _log.warning("read failed, returning partial data", file=str(self._path), error=str(exc))
                break

            if data:
                chunks.append(data)
                self._offset += len(data)
                remaining -= len(data)
                continue

            try:
                candidate = self._next_file()
            except FileNotFoundError as exc:
                vanished += 1
                if not self._vanished_policy.allows(vanished):
                    _log.warning("directory abandoned", attempts=vanished)
                    break
                _log.debug("current file vanished", error=str(exc))
                if not self._vanished_policy.pause(self._stop):
                    break
                continue

            if candidate is None:
                if not chunks and self._eof_delay > 0:
                    self._stop.wait(self._eof_delay)
                break

            self._switch_to(candidate)

        return b"".join(chunks)

    def _next_file(self) -> FileStat | None:
        """Return the file to read after the current one, or None.

        A file recreated or truncated under the current path comes first,
        and so does a checkpointed file that was missing at start-up and has
        reappeared.  Otherwise only files strictly newer than the current
        file qualify, unless the current file has vanished, in which case the
        whole directory is rescanned.

        Raises:
            FileNotFoundError: The current file (or the directory) is gone
                               and no eligible file exists.
        """
        newer_than: int | None = None
        if self._path is not None:
            try:
                current = stat_file(self._path)
            except FileNotFoundError:
                _log.warning("current file vanished, rescanning", file=str(self._path))
            else:
                kind = classify_rotation(self.cursor, current)
                if kind is not Rotation.SAME:
                    _log.info("current file replaced", file=current.name, kind=kind.value)
                    return current
                if self._restore_pending:
                    _log.info("checkpointed file is back", file=current.name, offset=self._offset)
                    return current
                newer_than = current.mtime_ns

        if newer_than is None:
            files = scan_directory(self._dir, self._rules)
            if not files:
                raise FileNotFoundError(errno.ENOENT, "no eligible file", str(self._dir))
            candidate = files[0]
        else:
            candidate = next_file_after(self._dir, self._rules, newer_than)
            if candidate is None:
                return None

        kind = classify_rotation(self.cursor, candidate)
        if kind is Rotation.SAME:
            return None
        _log.debug("next file found", file=candidate.name, kind=kind.value)
        return candidate

    def _resume_offset(self, candidate: FileStat) -> int:
        """Offset to open *candidate* at: the restored position if it is the cursor's file."""
        if (
            self._restore_pending
            and candidate.path == self._path
            and candidate.size >= self._offset
        ):
            return self._offset
        return 0

    def _reopen(self) -> bool:
        """Open the next eligible file when no handle is open.

        Returns False when the reopen policy's attempts are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                candidate = self._next_file()
                if candidate is None:
                    raise FileNotFoundError(errno.ENOENT, "no new file", str(self._dir))
                self._open(candidate, self._resume_offset(candidate))
                return True
            except OSError as exc:
                _log.warning(
                    "open next file failed",
                    error=str(exc),
                    retry_in=self._reopen_policy.delay,
                )
            if not self._reopen_policy.allows(attempt + 1):
                return False
            if not self._reopen_policy.pause(self._stop):
                raise ReaderClosedError(f"reader {self.name} has been closed")

    def _open(self, candidate: FileStat, offset: int = 0) -> None:
        fh = open(candidate.path, "rb")
        try:
            if offset:
                fh.seek(offset)
        except OSError:
            fh.close()
            raise
        self._file = fh
        self._path = candidate.path
        self._identity = candidate.identity
        self._offset = offset
        self._restore_pending = False
        # close() may have run while the file was being opened.
        if self._stop.is_set():
            self._file = None
            _close_quietly(fh)
            raise ReaderClosedError(f"reader {self.name} has been closed")

    def _switch_to(self, candidate: FileStat) -> None:
        finished = self._path
        finished_identity = self._identity
        fh, self._file = self._file, None
        if fh is not None:
            _close_quietly(fh)

        if finished is not None:
            if finished != candidate.path:
                self._record_done(finished)
            elif finished_identity != candidate.identity:
                # Replaced under the same path: the finished file is either
                # renamed away (record its new name) or gone.  Truncation in
                # place keeps the identity and records nothing.
                renamed = self._find_renamed(finished_identity)
                if renamed is not None:
                    self._record_done(renamed)

        try:
            self._open(candidate)
        except FileNotFoundError:
            _log.warning("next file vanished before open", file=candidate.name)
            return
        _log.info("start tail new file", file=candidate.name)

    def _find_renamed(self, identity: int | None) -> Path | None:
        if identity is None:
            return None
        try:
            path = find_by_identity(self._dir, identity)
        except OSError as exc:
            _log.warning("cannot look up rotated file", identity=identity, error=str(exc))
            return None
        if path is not None:
            _log.info("finished file was renamed", file=path.name)
        return path

    def _record_done(self, path: Path) -> None:
        attempt = 0
        while True:
            attempt += 1
            try:
                self._checkpoint.append_done_file(str(path))
                return
            except (CheckpointError, OSError) as exc:
                _log.error("cannot write done file", file=str(path), attempt=attempt, error=str(exc))
                if not self._done_policy.allows(attempt + 1):
                    raise
                if not self._done_policy.pause(self._stop):
                    raise ReaderClosedError(
                        f"reader {self.name} closed before done file {path} was recorded"
                    ) from exc

    # ------------------------------------------------------------------
    # Checkpointing and shutdown
    # ------------------------------------------------------------------

    def sync_meta(self) -> None:
        """Persist the cursor unless it is unchanged since the last flush.

        Raises whatever the checkpoint store raises; the next call retries.
        """
        if self._path is None:
            return
        current = (str(self._path), self._offset)
        if current == self._last_sync:
            _log.debug("cursor unchanged, skipping sync", file=current[0], offset=current[1])
            return
        self._checkpoint.write_offset(*current)
        self._last_sync = current

    def close(self) -> None:
        """Stop the tailer and release the open file.  Safe from any thread."""
        self._stop.set()
        fh, self._file = self._file, None
        if fh is not None:
            _close_quietly(fh)

    def __enter__(self) -> FileTailer:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_directory(directory: str | Path) -> Path:
    path = Path(directory)
    try:
        real = path.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise ConfigurationError(f"{path}: cannot resolve directory: {exc}") from exc
    if not real.is_dir():
        raise ConfigurationError(f"{real}: the path is not a directory")
    if not os.access(real, os.R_OK | os.X_OK):
        raise ConfigurationError(f"{real}: directory is not readable")
    return real


def _close_quietly(fh: BinaryIO) -> None:
    """Close *fh*, ignoring EINVAL from a handle the OS already invalidated."""
    try:
        fh.close()
    except OSError as exc:
        if exc.errno != errno.EINVAL:
            raise
