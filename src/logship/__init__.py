"""logship — ingestion-and-delivery core of a log-shipping agent.

Follows growing and rotating log files in a directory in strict modification
time order (:mod:`logship.tailer`), and forwards structured records, encoded
against the remote repo schema and packed into byte-bounded batches, to a
structured-data endpoint with partial-failure-aware retry
(:mod:`logship.sender`).

Delivery contract: at-least-once; accepted records are never resent.
"""

__version__ = "0.1.0"
