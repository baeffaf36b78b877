"""Byte-bounded batch construction.

``build_batches(encoded, max_bytes)`` packs encoded records into batches
whose payload stays within ``max_bytes``:

- records are never split and never reordered
- a record is added to the current batch unless that would push the
  payload past ``max_bytes``, in which case a new batch starts with it
- a record larger than ``max_bytes`` on its own forms a singleton batch
- no batch is ever empty; ``max_bytes == 0`` yields one batch per record

Concatenating every batch payload in order reproduces the encoding of the
whole input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

Record = Mapping[str, Any]


class EncodedRecord(NamedTuple):
    """A record, its position in the caller's input, and its encoded line."""

    position: int
    record: Record
    line: bytes


@dataclass(frozen=True)
class Batch:
    """Records sent in one delivery call, and their concatenated lines."""

    entries: tuple[EncodedRecord, ...]
    payload: bytes

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def records(self) -> list[Record]:
        return [e.record for e in self.entries]


def build_batches(encoded: Iterable[EncodedRecord], max_bytes: int) -> list[Batch]:
    """Split *encoded* into byte-bounded batches, preserving order."""
    batches: list[Batch] = []
    entries: list[EncodedRecord] = []
    size = 0

    for item in encoded:
        if entries and size + len(item.line) > max_bytes:
            batches.append(_seal(entries))
            entries = []
            size = 0
        entries.append(item)
        size += len(item.line)

    if entries:
        batches.append(_seal(entries))
    return batches


def _seal(entries: list[EncodedRecord]) -> Batch:
    return Batch(entries=tuple(entries), payload=b"".join(e.line for e in entries))
