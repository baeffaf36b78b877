"""Remote schema cache and its merge with the user field selection.

``SchemaResolver.resolve()`` returns the :class:`ResolvedSchema` the encoder
works from: the list of fields to emit, each with its output alias, the
record field it reads, and the remote declaration it is validated against.

Which fields are emitted (``merge_schema``):

- every remote field the user schema aliases (``abc a1`` → remote ``a1``)
- every remote field marked required, read from the same-named record field
- with ``default_all``, every other remote field under its own name
- user aliases with no remote counterpart, emitted untyped when present

Caching rules:

- the remote schema is refetched once it is ``refresh_seconds`` old, or
  after ``invalidate()``
- a failed refetch keeps serving the previous schema (stale but available)
  and the next attempt waits another ``refresh_seconds``
- a failed first fetch raises :class:`SchemaFetchError`
- a missing repo is created from the auto-create declaration, if one is
  configured

The cached :class:`ResolvedSchema` is immutable and replaced as a whole, so
encoders reading it while a background ``refresh()`` runs never see a
half-updated schema.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from logship.delivery import DeliveryClient, RepoNotFoundError
from logship.logging import get_logger
from logship.models.schema import RemoteField, RemoteSchema
from logship.user_schema import UserSchema

_log = get_logger(__name__)


class SchemaFetchError(RuntimeError):
    """The remote schema could not be fetched and no cached copy exists."""


@dataclass(frozen=True)
class ResolvedField:
    """One emitted field: output alias, source record field, remote declaration."""

    alias: str
    source: str
    remote: RemoteField | None


@dataclass(frozen=True)
class ResolvedSchema:
    """Fields to emit, sorted by alias, plus when the remote copy was fetched."""

    fields: tuple[ResolvedField, ...]
    fetched_at: float


def merge_schema(remote: RemoteSchema, user: UserSchema) -> tuple[ResolvedField, ...]:
    """Combine *remote* and *user* into the alias-sorted list of emitted fields."""
    alias_to_source = {alias: source for source, alias in user.fields.items()}

    resolved: dict[str, ResolvedField] = {}
    for field in remote.fields:
        if field.key in alias_to_source:
            source = alias_to_source[field.key]
        elif user.default_all or field.required:
            source = field.key
        else:
            continue
        resolved[field.key] = ResolvedField(alias=field.key, source=source, remote=field)

    for source, alias in user.fields.items():
        if alias not in resolved:
            resolved[alias] = ResolvedField(alias=alias, source=source, remote=None)

    return tuple(sorted(resolved.values(), key=lambda f: f.alias))


class SchemaResolver:
    """Cache of the remote schema for one repo, merged with the user schema.

    Args:
        client:          Delivery client used to fetch (and create) the repo.
        repo:            Repo name.
        user_schema:     Field selection and aliasing.
        refresh_seconds: Maximum age of the cached schema.
        auto_create:     Schema used to create the repo when it is missing.
        clock:           Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        client: DeliveryClient,
        repo: str,
        user_schema: UserSchema,
        *,
        refresh_seconds: float = 300,
        auto_create: RemoteSchema | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._repo = repo
        self._user_schema = user_schema
        self._refresh_seconds = refresh_seconds
        self._auto_create = auto_create
        self._clock = clock

        self._lock = threading.Lock()
        self._cached: ResolvedSchema | None = None
        self._remote: RemoteSchema | None = None
        self._invalidated = False

    @property
    def user_schema(self) -> UserSchema:
        return self._user_schema

    @user_schema.setter
    def user_schema(self, value: UserSchema) -> None:
        with self._lock:
            self._user_schema = value
            if self._remote is not None:
                self._cached = ResolvedSchema(
                    fields=merge_schema(self._remote, value),
                    fetched_at=self._cached.fetched_at if self._cached else self._clock(),
                )

    def resolve(self) -> ResolvedSchema:
        """Return the current schema, refreshing it first if it is due.

        Raises:
            SchemaFetchError: No schema was ever fetched and fetching failed.
        """
        cached = self._cached
        if cached is not None and not self._is_due(cached):
            return cached
        return self.refresh()

    def refresh(self) -> ResolvedSchema:
        """Fetch the remote schema now and swap it into the cache.

        On failure the previous fields are returned and the next attempt is
        deferred by one refresh interval.
        """
        with self._lock:
            try:
                remote = self._fetch()
            except Exception as exc:
                if self._cached is None:
                    raise SchemaFetchError(f"cannot fetch schema of repo {self._repo!r}: {exc}") from exc
                _log.warning(
                    "schema refresh failed, using cached schema",
                    repo=self._repo,
                    error=str(exc),
                    retry_in=self._refresh_seconds,
                )
                # Re-stamp the stale copy so the next attempt waits a full interval.
                stale = ResolvedSchema(fields=self._cached.fields, fetched_at=self._clock())
                self._cached = stale
                self._invalidated = False
                return stale

            resolved = ResolvedSchema(
                fields=merge_schema(remote, self._user_schema),
                fetched_at=self._clock(),
            )
            self._remote = remote
            self._cached = resolved
            self._invalidated = False
            _log.debug("schema refreshed", repo=self._repo, fields=[f.alias for f in resolved.fields])
            return resolved

    def invalidate(self) -> None:
        """Force a refetch on the next ``resolve()``."""
        self._invalidated = True

    def _is_due(self, cached: ResolvedSchema) -> bool:
        return self._invalidated or self._clock() - cached.fetched_at >= self._refresh_seconds

    def _fetch(self) -> RemoteSchema:
        try:
            return self._client.get_schema(self._repo)
        except RepoNotFoundError:
            if self._auto_create is None:
                raise
            _log.info("repo not found, creating it", repo=self._repo, fields=self._auto_create.keys())
            self._client.create_repo(self._repo, self._auto_create)
            return self._auto_create
