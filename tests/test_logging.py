"""Tests for structured logging: run_id binding and per-source context."""

import json

import pytest
import structlog

from logship.config import Settings
from logship.logging import configure_logging, get_logger, log_context
from logship.schema_spec import parse_schema_spec
from logship.sender import SendError, Sender
from logship.tailer import FileTailer
from tests.conftest import write_log


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Isolate each test: reset structlog config and clear context vars."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _settings(**logging_kwargs) -> Settings:
    return Settings(logging=logging_kwargs)


def _json_events(capsys) -> list[dict]:
    """Parse the JSON lines written to stderr so far."""
    err = capsys.readouterr().err
    return [json.loads(line) for line in err.splitlines() if line.strip()]


def _event(events: list[dict], name: str) -> dict:
    matches = [e for e in events if e["event"] == name]
    assert matches, f"no {name!r} event in {[e['event'] for e in events]}"
    return matches[0]


class TestConfigureLogging:
    def test_returns_eight_char_hex_run_id(self):
        run_id = configure_logging(_settings())
        assert len(run_id) == 8
        assert all(c in "0123456789abcdef" for c in run_id)

    def test_run_id_bound_to_context_vars(self):
        run_id = configure_logging(_settings())
        assert structlog.contextvars.get_contextvars()["run_id"] == run_id

    def test_each_call_produces_unique_run_id(self):
        ids = {configure_logging(_settings()) for _ in range(10)}
        assert len(ids) == 10

    def test_reconfigure_replaces_run_id(self):
        first = configure_logging(_settings())
        second = configure_logging(_settings())
        run_id = structlog.contextvars.get_contextvars()["run_id"]
        assert run_id == second
        assert run_id != first

    def test_loads_settings_when_none_given(self):
        assert len(configure_logging(None)) == 8

    def test_json_lines_on_stderr(self, capsys):
        run_id = configure_logging(_settings(format="json"))
        get_logger("logship.test").info("hello", answer=42)
        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err)
        assert event["event"] == "hello"
        assert event["answer"] == 42
        assert event["run_id"] == run_id
        assert event["logger"] == "logship.test"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filters_events(self, capsys):
        configure_logging(_settings(level="WARNING"))
        log = get_logger("logship.test")
        log.info("quiet")
        log.warning("loud")
        assert [e["event"] for e in _json_events(capsys)] == ["loud"]


class TestLogContext:
    def test_binds_inside_block_only(self):
        configure_logging(_settings())
        with log_context(directory="/var/log/app"):
            assert structlog.contextvars.get_contextvars()["directory"] == "/var/log/app"
        ctx = structlog.contextvars.get_contextvars()
        assert "directory" not in ctx
        assert "run_id" in ctx

    def test_nested_blocks_add_and_restore(self):
        with log_context(directory="/var/log/app"):
            with log_context(repo="web"):
                ctx = structlog.contextvars.get_contextvars()
                assert (ctx["directory"], ctx["repo"]) == ("/var/log/app", "web")
            ctx = structlog.contextvars.get_contextvars()
            assert "repo" not in ctx
            assert ctx["directory"] == "/var/log/app"

    def test_restored_when_block_raises(self):
        with pytest.raises(RuntimeError):
            with log_context(repo="web"):
                raise RuntimeError("boom")
        assert "repo" not in structlog.contextvars.get_contextvars()

    def test_logger_name_is_on_every_event(self):
        with structlog.testing.capture_logs() as events:
            get_logger("logship.tailer").info("hello")
        assert events[0]["logger"] == "logship.tailer"


class TestSourceContext:
    def test_tailer_events_carry_directory(self, tmp_path, checkpoint, capsys):
        logdir = tmp_path / "logs"
        logdir.mkdir()
        write_log(logdir / "a.log", "aaaa\n")
        run_id = configure_logging(_settings(format="json"))

        tailer = FileTailer(logdir, checkpoint, eof_delay=0)
        tailer.read(100)

        started = _event(_json_events(capsys), "tailer started")
        assert started["run_id"] == run_id
        assert started["directory"] == str(logdir.resolve())
        assert started["logger"] == "logship.tailer"
        assert started["level"] == "info"
        assert "directory" not in structlog.contextvars.get_contextvars()

    def test_tailer_read_events_carry_directory(self, tmp_path, checkpoint, capsys):
        logdir = tmp_path / "logs"
        logdir.mkdir()
        write_log(logdir / "a.log", "aaaa\n", 1_700_000_001.0)
        tailer = FileTailer(logdir, checkpoint, eof_delay=0)
        write_log(logdir / "b.log", "bbbb\n", 1_700_000_002.0)
        run_id = configure_logging(_settings(format="json"))

        assert tailer.read(100) == b"aaaa\nbbbb\n"

        switched = _event(_json_events(capsys), "start tail new file")
        assert switched["file"] == "b.log"
        assert switched["directory"] == str(logdir.resolve())
        assert switched["run_id"] == run_id

    def test_sender_events_carry_repo(self, client, capsys):
        client.schema = parse_schema_spec("ab *s")
        client.reject_if = lambda line: True
        run_id = configure_logging(_settings(format="json"))

        with pytest.raises(SendError):
            Sender(client, "web").send([{"ab": "x"}])

        rejected = _event(_json_events(capsys), "batch partially rejected")
        assert rejected["repo"] == "web"
        assert rejected["run_id"] == run_id
        assert rejected["logger"] == "logship.sender"
        assert "repo" not in structlog.contextvars.get_contextvars()
