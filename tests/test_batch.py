"""Tests for byte-bounded batch construction."""

from logship.batch import EncodedRecord, build_batches


def _encoded(*lines: bytes) -> list[EncodedRecord]:
    return [EncodedRecord(i, {"n": i}, line) for i, line in enumerate(lines)]


class TestBuildBatches:
    def test_empty_input(self):
        assert build_batches([], 100) == []

    def test_everything_fits_in_one_batch(self):
        [batch] = build_batches(_encoded(b"a=1\n", b"a=2\n"), 100)
        assert batch.payload == b"a=1\na=2\n"
        assert len(batch) == 2
        assert batch.records == [{"n": 0}, {"n": 1}]

    def test_exact_fit_stays_together(self):
        batches = build_batches(_encoded(b"a=1\n", b"a=2\n"), 8)
        assert [len(b) for b in batches] == [2]

    def test_splits_at_the_bound(self):
        batches = build_batches(_encoded(b"a=1\n", b"a=2\n", b"a=3\n"), 9)
        assert [b.payload for b in batches] == [b"a=1\na=2\n", b"a=3\n"]

    def test_oversized_record_is_a_singleton(self):
        big = b"x=" + b"y" * 50 + b"\n"
        batches = build_batches(_encoded(b"a=1\n", big, b"a=2\n"), 10)
        assert [b.payload for b in batches] == [b"a=1\n", big, b"a=2\n"]

    def test_zero_bound_gives_one_batch_per_record(self):
        batches = build_batches(_encoded(b"a=1\n", b"a=2\n"), 0)
        assert [len(b) for b in batches] == [1, 1]

    def test_order_and_positions_preserved(self):
        lines = [f"n={i}\n".encode() for i in range(25)]
        batches = build_batches(_encoded(*lines), 20)
        assert b"".join(b.payload for b in batches) == b"".join(lines)
        positions = [e.position for b in batches for e in b.entries]
        assert positions == list(range(25))
        assert all(len(b.payload) <= 20 for b in batches)
