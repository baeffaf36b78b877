"""Schema-aware batch sender with partial-failure reporting.

``Sender.send(records)`` is the single entry point.  For one call it:

1. Resolves the repo schema via :class:`~logship.schema.SchemaResolver`.
2. Encodes every record with :class:`~logship.encoder.RecordEncoder`.
3. Packs the lines into byte-bounded batches
   (:func:`~logship.batch.build_batches`).
4. Posts the batches one after another, in order.

Records the endpoint did not accept are collected across all batches into
one :class:`SendError`, in input order.  Accepted records never appear in
it, so retrying is simply::

    try:
        sender.send(records)
    except SendError as exc:
        sender.send(exc.failed)      # only the unaccepted remainder

A record is reported as failed when:

- the schema was never fetched and fetching fails (every record)
- its batch was rejected as a whole (``post_batch`` raised)
- the endpoint listed it among a batch's rejected indices
- it has an invalid field and the validation policy is ``reject_record``
"""

from __future__ import annotations

from collections.abc import Sequence

from logship.batch import Batch, EncodedRecord, Record, build_batches
from logship.config import SenderSettings
from logship.delivery import DeliveryClient, DeliveryError
from logship.encoder import FieldValidationError, RecordEncoder, ValidationPolicy
from logship.logging import get_logger, log_context
from logship.models.schema import RemoteSchema
from logship.schema import SchemaFetchError, SchemaResolver
from logship.schema_spec import parse_schema_spec
from logship.user_schema import UserSchema, parse_user_schema

# The endpoint rejects request bodies above 2 MiB.
DEFAULT_MAX_BATCH_BYTES = 2 * 1024 * 1024

_EMPTY_LINE = b"\n"

_log = get_logger(__name__)


class SendError(Exception):
    """Some records of a ``send`` call were not accepted.

    Attributes:
        failed: The unaccepted records, in input order.
        causes: The errors behind the failures (fetch, delivery, validation).
    """

    def __init__(self, failed: list[Record], causes: list[Exception]) -> None:
        detail = f": {causes[0]}" if causes else ""
        super().__init__(f"{len(failed)} record(s) not accepted{detail}")
        self.failed = failed
        self.causes = causes


class Sender:
    """Deliver records to one repo.

    Args:
        client:          Delivery client.
        repo:            Target repo name.
        user_schema:     Field selection and aliasing; ship everything if None.
        auto_create:     Schema used to create the repo when it is missing.
        max_batch_bytes: Upper bound on one batch payload.
        refresh_seconds: Maximum age of the cached remote schema.
        validation:      Invalid-field policy, see :mod:`logship.encoder`.
        resolver:        Pre-built resolver (overrides the schema arguments).
        encoder:         Pre-built encoder (overrides ``validation``).
    """

    def __init__(
        self,
        client: DeliveryClient,
        repo: str,
        *,
        user_schema: UserSchema | None = None,
        auto_create: RemoteSchema | None = None,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
        refresh_seconds: float = 300,
        validation: ValidationPolicy = "drop_field",
        resolver: SchemaResolver | None = None,
        encoder: RecordEncoder | None = None,
    ) -> None:
        self._client = client
        self._repo = repo
        self._max_batch_bytes = max_batch_bytes
        self._resolver = resolver or SchemaResolver(
            client,
            repo,
            user_schema if user_schema is not None else UserSchema(),
            refresh_seconds=refresh_seconds,
            auto_create=auto_create,
        )
        self._encoder = encoder or RecordEncoder(validation)

    @classmethod
    def from_settings(cls, settings: SenderSettings, client: DeliveryClient) -> Sender:
        """Build a sender from the ``[sender]`` settings section."""
        return cls(
            client,
            settings.repo,
            user_schema=parse_user_schema(settings.user_schema),
            auto_create=parse_schema_spec(settings.auto_create) if settings.auto_create.strip() else None,
            max_batch_bytes=settings.max_batch_bytes,
            refresh_seconds=settings.schema_refresh_seconds,
            validation=settings.validation,
        )

    @property
    def repo(self) -> str:
        return self._repo

    @property
    def resolver(self) -> SchemaResolver:
        return self._resolver

    def send(self, records: Sequence[Record]) -> None:
        """Deliver *records*; raise :class:`SendError` with any unaccepted subset."""
        if not records:
            return
        with log_context(repo=self._repo):
            self._send(records)

    def _send(self, records: Sequence[Record]) -> None:
        try:
            schema = self._resolver.resolve()
        except SchemaFetchError as exc:
            _log.warning("schema unavailable, nothing sent", records=len(records), error=str(exc))
            raise SendError(list(records), [exc]) from exc

        failed: set[int] = set()
        causes: list[Exception] = []
        encoded: list[EncodedRecord] = []

        for position, record in enumerate(records):
            try:
                line = self._encoder.encode(record, schema)
            except FieldValidationError as exc:
                _log.warning("record rejected by validation", position=position, error=str(exc))
                failed.add(position)
                causes.append(exc)
                continue
            if line == _EMPTY_LINE:
                _log.debug("record has no fields to ship, skipped", position=position)
                continue
            encoded.append(EncodedRecord(position, record, line))

        rejected_by_endpoint = False
        for batch in build_batches(encoded, self._max_batch_bytes):
            rejected = self._post(batch, causes)
            if rejected:
                rejected_by_endpoint = True
                failed.update(batch.entries[i].position for i in rejected)

        if rejected_by_endpoint:
            # Rejections are often schema drift; refetch before the retry.
            self._resolver.invalidate()

        if failed:
            raise SendError([records[i] for i in sorted(failed)], causes)

        _log.debug("send complete", records=len(records))

    def _post(self, batch: Batch, causes: list[Exception]) -> list[int]:
        """Post one batch; return the indices (within the batch) not accepted."""
        try:
            reported = self._client.post_batch(self._repo, batch.payload, len(batch))
        except Exception as exc:
            _log.warning(
                "batch rejected",
                records=len(batch),
                bytes=len(batch.payload),
                error=str(exc),
            )
            causes.append(exc)
            return list(range(len(batch)))

        rejected = sorted({i for i in reported if 0 <= i < len(batch)})
        if len(rejected) != len(set(reported)):
            _log.warning("endpoint reported out-of-range indices", indices=list(reported))
        if rejected:
            _log.warning("batch partially rejected", rejected=len(rejected), records=len(batch))
            causes.append(DeliveryError(f"{len(rejected)} of {len(batch)} records rejected by repo {self._repo!r}"))
        return rejected
