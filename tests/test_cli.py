"""Tests for the command line entry point."""
import json

import pytest

from adguard_sync import cli
from adguard_sync.sync_engine import ReplicaReport, RunReport
from adguard_sync.utils.logging_config import main_logger, perf_logger

CONFIG = """
origin:
  url: http://10.0.0.2
replicas:
  - name: replica1
    url: http://10.0.0.3
sync:
  workers: 3
"""


class FakeEngine:
    """Stands in for SyncEngine and records how it was driven."""

    instances: list["FakeEngine"] = []
    success = True

    def __init__(self, config):
        self.config = config
        self.dry_run = None
        FakeEngine.instances.append(self)

    async def run_once(self, dry_run=None):
        self.dry_run = dry_run
        replica = ReplicaReport(name="replica1", host="http://10.0.0.3")
        if not FakeEngine.success:
            replica.error = "TransportError: connection refused"
        return RunReport(
            timestamp="2026-01-01T00:00:00+00:00",
            origin="origin",
            dry_run=bool(dry_run),
            replicas=[replica],
        )


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Isolated config search path, log file and fake engine."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("ADGUARD_SYNC_LOG_FILE", str(tmp_path / "sync.log"))
    for name in ("ADGUARD_SYNC_CONFIG", "ORIGIN_URL", "REPLICA1_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "SyncEngine", FakeEngine)
    FakeEngine.instances = []
    FakeEngine.success = True
    config = tmp_path / "adguard-sync.yaml"
    config.write_text(CONFIG)
    yield config
    for logger in (main_logger, perf_logger):
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
    perf_logger.propagate = True


class TestMain:
    """Tests for cli.main."""

    def test_success_exit_code(self, env, capsys):
        assert cli.main(["--config", str(env)]) == cli.EXIT_OK
        assert "replica1 [OK]" in capsys.readouterr().out

    def test_config_found_on_search_path(self, env):
        assert cli.main([]) == cli.EXIT_OK
        assert FakeEngine.instances[0].config.replicas[0].name == "replica1"

    def test_replica_failure_exit_code(self, env):
        FakeEngine.success = False
        assert cli.main(["--config", str(env)]) == cli.EXIT_FAILED

    def test_overrides(self, env):
        cli.main(["--config", str(env), "--workers", "7", "--timeout", "60", "--dry-run"])

        engine = FakeEngine.instances[0]
        assert engine.config.settings.workers == 7
        assert engine.config.settings.run_timeout == 60
        assert engine.dry_run is True

    def test_dry_run_defaults_to_config(self, env):
        cli.main(["--config", str(env)])
        assert FakeEngine.instances[0].dry_run is None

    def test_json_output(self, env, capsys):
        cli.main(["--config", str(env), "--json"])

        data = json.loads(capsys.readouterr().out)
        assert data["summary"]["total_replicas"] == 1
        assert data["replicas"][0]["name"] == "replica1"

    def test_missing_config_exit_code(self, env, tmp_path):
        assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == cli.EXIT_CONFIG

    def test_invalid_config_exit_code(self, env):
        env.write_text("origin:\n  url: not a url\n")
        assert cli.main(["--config", str(env)]) == cli.EXIT_CONFIG

    def test_invalid_workers_exit_code(self, env):
        assert cli.main(["--config", str(env), "--workers", "0"]) == cli.EXIT_CONFIG
        assert FakeEngine.instances == []

    def test_invalid_replica_still_runs(self, env):
        """Only origin and run-wide errors stop the run; a bad replica is passed on."""
        env.write_text(
            "origin:\n"
            "  url: http://10.0.0.2\n"
            "replicas:\n"
            "  - name: replica1\n"
            "    url: http://10.0.0.3\n"
            "  - name: broken\n"
            "    url: not a url\n"
        )

        cli.main(["--config", str(env)])

        config = FakeEngine.instances[0].config
        assert [r.name for r in config.replicas] == ["replica1"]
        assert [r.name for r in config.invalid_replicas] == ["broken"]
