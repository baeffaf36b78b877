"""Log-file discovery inside one watched directory.

``IgnoreRules`` is the eligibility predicate shared by every discovery path.
``scan_directory(directory, rules, *, newer_than_ns)`` lists the eligible
regular files of a single directory (no recursion), oldest first.
``oldest_file`` and ``newest_file`` pick the start file for a tailer that
has no checkpoint, and ``next_file_after`` picks the successor of the
file being read.

A file is eligible when all of the following hold:

- it is not hidden (name starting with ``.``), unless hidden files are allowed
- its name does not end with any suffix in the denylist
- its name matches the glob allow-pattern (``fnmatch`` syntax, case-sensitive)

Ordering uses the nanosecond modification time, then the file name, so two
files written in the same second still have a stable order.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import NamedTuple


@dataclass(frozen=True)
class IgnoreRules:
    """Pure eligibility predicate for candidate file names.

    Re-evaluating the same name always yields the same verdict; no
    filesystem access happens here.
    """

    ignore_hidden: bool = True
    ignore_suffixes: tuple[str, ...] = ()
    valid_pattern: str = "*"

    def accepts(self, name: str) -> bool:
        """Return True if a file called *name* may be tailed."""
        if self.ignore_hidden and name.startswith("."):
            return False
        if any(name.endswith(suffix) for suffix in self.ignore_suffixes):
            return False
        return fnmatchcase(name, self.valid_pattern)


class FileStat(NamedTuple):
    """Snapshot of one file's name, size, mtime and identity.

    ``identity`` is the inode number, or None where the platform reports 0
    (identity unknown).
    """

    path: Path
    size: int  # bytes (st_size)
    mtime_ns: int  # st_mtime_ns
    identity: int | None

    @property
    def name(self) -> str:
        return self.path.name


def file_identity(st: os.stat_result) -> int | None:
    """Return the inode of *st*, or None when the filesystem does not expose one."""
    return st.st_ino or None


def stat_file(path: Path) -> FileStat:
    """Stat *path*; raises ``FileNotFoundError`` if it no longer exists."""
    st = os.stat(path)
    return FileStat(path=path, size=st.st_size, mtime_ns=st.st_mtime_ns, identity=file_identity(st))


def scan_directory(
    directory: Path,
    rules: IgnoreRules,
    *,
    newer_than_ns: int | None = None,
) -> list[FileStat]:
    """Return eligible regular files in *directory*, oldest first.

    Args:
        directory:     Directory to list (not recursive).
        rules:         Eligibility predicate applied to every entry name.
        newer_than_ns: When given, only files whose mtime is strictly later
                       than this value (nanoseconds) are returned.

    Returns:
        List of :class:`FileStat`, sorted by ``(mtime_ns, name)``.

    Raises:
        FileNotFoundError: *directory* does not exist.
    """
    found = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if not rules.accepts(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
                st = entry.stat()
            except FileNotFoundError:
                continue  # removed between listing and stat
            if newer_than_ns is not None and st.st_mtime_ns <= newer_than_ns:
                continue
            found.append(
                FileStat(
                    path=directory / entry.name,
                    size=st.st_size,
                    mtime_ns=st.st_mtime_ns,
                    identity=file_identity(st),
                )
            )

    return sorted(found, key=lambda f: (f.mtime_ns, f.name))


def oldest_file(directory: Path, rules: IgnoreRules) -> FileStat | None:
    """Return the eligible file with the earliest mtime, or None if there is none."""
    files = scan_directory(directory, rules)
    return files[0] if files else None


def newest_file(directory: Path, rules: IgnoreRules) -> FileStat | None:
    """Return the eligible file with the latest mtime, or None if there is none."""
    files = scan_directory(directory, rules)
    return files[-1] if files else None


def next_file_after(directory: Path, rules: IgnoreRules, mtime_ns: int) -> FileStat | None:
    """Return the earliest eligible file strictly newer than *mtime_ns*, or None."""
    files = scan_directory(directory, rules, newer_than_ns=mtime_ns)
    return files[0] if files else None


def find_by_identity(directory: Path, identity: int) -> Path | None:
    """Return the path of the regular file in *directory* with inode *identity*.

    Ignore rules do not apply: a rotated file keeps its identity under a
    name the rules may exclude (``app.log.1``, ``app.log.gz``).
    """
    with os.scandir(directory) as entries:
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False) and entry.inode() == identity:
                    return directory / entry.name
            except FileNotFoundError:
                continue
    return None
