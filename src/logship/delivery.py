"""DeliveryClient collaborator interface used by :class:`~logship.sender.Sender`.

Network transport lives outside this package.  The sender needs:

- ``get_schema(repo)``                — the repo's :class:`RemoteSchema`;
  raises :class:`RepoNotFoundError` when the repo does not exist
- ``create_repo(repo, schema)``       — create a repo (auto-create only)
- ``post_batch(repo, payload, count)`` — transmit one batch of ``count``
  newline-terminated lines; returns the indices (within the batch) of the
  records the endpoint rejected, empty when all were accepted

Any exception raised by ``post_batch`` means the whole batch was rejected.
Timeouts and connection handling belong to the client.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from logship.models.schema import RemoteSchema


class DeliveryError(RuntimeError):
    """The endpoint refused a request."""


class RepoNotFoundError(DeliveryError):
    """The target repo does not exist on the endpoint."""


class DeliveryClient(Protocol):
    def get_schema(self, repo: str) -> RemoteSchema: ...

    def create_repo(self, repo: str, schema: RemoteSchema) -> None: ...

    def post_batch(self, repo: str, payload: bytes, count: int) -> Sequence[int]: ...
