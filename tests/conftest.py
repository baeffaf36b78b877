"""Shared pytest helpers and fixtures for the logship test suite.

write_log(path, text, mtime)  — create/overwrite a log file with a fixed mtime
MemoryCheckpoint              — in-memory Checkpoint with injectable failures
FakeDeliveryClient            — in-memory DeliveryClient recording every post
checkpoint                    — fresh MemoryCheckpoint per test
client                        — fresh FakeDeliveryClient per test
"""

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from logship.checkpoint import CheckpointError
from logship.delivery import DeliveryError, RepoNotFoundError
from logship.models.schema import RemoteSchema


def write_log(path: Path, text: str, mtime: float | None = None) -> Path:
    """Write *text* to *path* and optionally pin its mtime (seconds)."""
    path.write_bytes(text.encode())
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class MemoryCheckpoint:
    """Checkpoint store kept in memory.

    Set ``append_failures`` / ``write_failures`` to make the next N calls
    raise :class:`CheckpointError`; set ``read_error`` to make
    ``read_offset`` fail.
    """

    def __init__(self, stored: tuple[str, int] | None = None) -> None:
        self.stored = stored
        self.writes: list[tuple[str, int]] = []
        self.done: list[str] = []
        self.append_failures = 0
        self.append_attempts = 0
        self.write_failures = 0
        self.read_error = False

    def read_offset(self) -> tuple[str, int] | None:
        if self.read_error:
            raise CheckpointError("checkpoint file is corrupt")
        return self.stored

    def write_offset(self, path: str, offset: int) -> None:
        if self.write_failures:
            self.write_failures -= 1
            raise CheckpointError("disk full")
        self.writes.append((path, offset))
        self.stored = (path, offset)

    def append_done_file(self, path: str) -> None:
        self.append_attempts += 1
        if self.append_failures:
            self.append_failures -= 1
            raise CheckpointError("done file is locked")
        self.done.append(path)


class FakeDeliveryClient:
    """Delivery endpoint kept in memory.

    ``schema``        — the repo schema; None means the repo does not exist
    ``schema_error``  — raised by ``get_schema`` while set
    ``fail_posts``    — number of upcoming ``post_batch`` calls that raise
    ``reject_if``     — predicate over a line; matching lines are rejected
    ``accepted``      — every line the endpoint accepted, in arrival order
    """

    def __init__(self, schema: RemoteSchema | None = None) -> None:
        self.schema = schema
        self.schema_error: Exception | None = None
        self.get_schema_calls = 0
        self.created: list[tuple[str, RemoteSchema]] = []
        self.posts: list[bytes] = []
        self.accepted: list[bytes] = []
        self.fail_posts = 0
        self.reject_if: Callable[[bytes], bool] | None = None

    def get_schema(self, repo: str) -> RemoteSchema:
        self.get_schema_calls += 1
        if self.schema_error is not None:
            raise self.schema_error
        if self.schema is None:
            raise RepoNotFoundError(f"repo {repo} does not exist")
        return self.schema

    def create_repo(self, repo: str, schema: RemoteSchema) -> None:
        self.created.append((repo, schema))
        self.schema = schema

    def post_batch(self, repo: str, payload: bytes, count: int) -> list[int]:
        self.posts.append(payload)
        if self.fail_posts:
            self.fail_posts -= 1
            raise DeliveryError("503 service unavailable")
        lines = payload.splitlines(keepends=True)
        assert len(lines) == count
        rejected = [i for i, line in enumerate(lines) if self.reject_if and self.reject_if(line)]
        self.accepted.extend(line for i, line in enumerate(lines) if i not in rejected)
        return rejected


@pytest.fixture()
def checkpoint() -> MemoryCheckpoint:
    return MemoryCheckpoint()


@pytest.fixture()
def client() -> FakeDeliveryClient:
    return FakeDeliveryClient()
