"""Tests for the command-line interface."""

import argparse

import pytest

from src.cli import build_config, main, setup_logging


def run_args(**kwargs):
    defaults = dict(
        limit=None,
        page_size=None,
        self_change_ttl=None,
        snapshot_timeout=None,
        bind=None,
        port=None,
    )
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


class TestBuildConfig:
    """Tests for merging flags with the environment."""

    def test_defaults(self, monkeypatch):
        for key in ["LIMIT", "PAGE_SIZE", "PORT", "BIND", "SELF_CHANGE_TTL", "SNAPSHOT_TIMEOUT"]:
            monkeypatch.delenv(f"INCREMENTAL_AGENT_{key}", raising=False)

        config = build_config(run_args())

        assert config.max_tracked_files == 10000
        assert config.bind_host == "0.0.0.0"
        assert config.port == 8080

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("INCREMENTAL_AGENT_LIMIT", "50")
        monkeypatch.setenv("INCREMENTAL_AGENT_PORT", "9000")

        config = build_config(run_args(limit=20))

        assert config.max_tracked_files == 20
        assert config.port == 9000

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            build_config(run_args(limit=0))


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logging("chatty")

    def test_known_level(self):
        setup_logging("warning")
        setup_logging("info", verbose=True)


class TestMain:
    """Tests for argument parsing."""

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            main([])

    def test_run_missing_root(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["run", str(tmp_path / "missing")])
        assert exc_info.value.code == 1

    def test_stats_unreachable(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["stats", "--host", "127.0.0.1", "--port", "1"])
        assert exc_info.value.code == 1

    def test_bad_log_level(self):
        with pytest.raises(SystemExit):
            main(["-l", "chatty", "reset"])
