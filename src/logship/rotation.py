"""Rotation detection: is a discovered file genuinely different from the cursor?

``classify_rotation(cursor, candidate)`` is a pure function over the current
cursor and a candidate :class:`~logship.discovery.FileStat`.  Signals are
checked in priority order:

  1. ROTATED   — both inodes are known and differ
  2. TRUNCATED — the candidate is smaller than the bytes already consumed
                 (rotation signature even when an inode number is reused)
  3. RENAMED   — an inode is unknown on either side and the names differ
                 (platforms without reliable file identity)
  4. SAME      — none of the above; no switch happens

A known, equal inode under a different name is SAME: it is the file being
read, renamed away by the rotator, and reopening it would replay it.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from logship.discovery import FileStat

if TYPE_CHECKING:
    from logship.tailer import FileCursor


class Rotation(Enum):
    SAME = "same"
    ROTATED = "rotated"
    TRUNCATED = "truncated"
    RENAMED = "renamed"


def classify_rotation(cursor: FileCursor, candidate: FileStat) -> Rotation:
    """Classify *candidate* relative to the file *cursor* currently points at."""
    known = cursor.identity is not None and candidate.identity is not None
    if known and cursor.identity != candidate.identity:
        return Rotation.ROTATED
    if candidate.size < cursor.offset:
        return Rotation.TRUNCATED
    current_name = cursor.path.name if cursor.path is not None else None
    if not known and candidate.name != current_name:
        return Rotation.RENAMED
    return Rotation.SAME


def is_new_file(cursor: FileCursor, candidate: FileStat) -> bool:
    """Return True if switching to *candidate* is a genuine file switch."""
    return classify_rotation(cursor, candidate) is not Rotation.SAME
