"""Checkpoint collaborator interface used by :class:`~logship.tailer.FileTailer`.

The storage engine behind a checkpoint lives outside this package; the
tailer only needs three operations:

- ``read_offset()``           — the last flushed ``(path, offset)``, or None
- ``write_offset(path, off)`` — durably persist the cursor position
- ``append_done_file(path)``  — durably append to the consumed-files log

The done-file log lets downstream tooling delete files the tailer has fully
read.  One entry is appended per file switch, in switch order.
"""

from __future__ import annotations

from typing import Protocol


class CheckpointError(RuntimeError):
    """Raised by a checkpoint store that cannot read or persist state."""


class Checkpoint(Protocol):
    def read_offset(self) -> tuple[str, int] | None:
        """Return the stored ``(path, offset)``, or None when nothing was stored.

        May raise :class:`CheckpointError`; the tailer treats that as
        "no prior state".
        """
        ...

    def write_offset(self, path: str, offset: int) -> None: ...

    def append_done_file(self, path: str) -> None: ...
