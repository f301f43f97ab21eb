"""
Unit tests for CLI module

Tests for the command-line interface functionality including
argument parsing, credential handling, and command execution.
"""

import argparse
import json
from unittest.mock import MagicMock, patch

import pytest

from refsync.cli import (
    cmd_compare,
    cmd_migrate,
    cmd_report,
    create_parser,
    create_services,
    get_credentials_from_vault_or_env,
    main,
)
from refsync.errors import ConfigurationError
from refsync.service import WebApiRecordService

from factories import build_source, build_target

COMPARE_CONFIG = {
    "tables": [{"logicalName": "new_country", "primaryIdField": "new_countryid"}],
    "relationships": [{"relationshipName": "new_country_tag"}],
}

MIGRATE_CONFIG = {
    "batchSize": 2,
    "tables": [{"logicalName": "new_country", "manageState": True}],
    "manyToManyRelationships": [{"relationshipName": "new_country_tag"}],
}


def _write_config(tmp_path, data, name="config.json") -> str:
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def _in_sync_target():
    source = build_source()
    return build_target(
        countries=list(source.records("new_country").values()),
        pairs=[("c1", "t1"), ("c2", "t2")],
    )


def _exit_code(command, args) -> int:
    with pytest.raises(SystemExit) as exc_info:
        command(args)
    return exc_info.value.code


class TestCreateParser:
    """Tests for create_parser function"""

    def test_compare_arguments(self):
        args = create_parser().parse_args([
            "--log-level", "DEBUG", "compare", "--config", "c.json",
            "--source-url", "https://dev", "--format", "csv", "--output", "diff.csv",
        ])

        assert args.command == "compare"
        assert args.log_level == "DEBUG"
        assert args.source_url == "https://dev"
        assert args.format == "csv"
        assert args.use_vault is False

    def test_migrate_defaults(self):
        args = create_parser().parse_args(["migrate", "--config", "m.json"])

        assert args.dry_run is False
        assert args.force is False
        assert args.batch_size is None
        assert args.format == "console"
        assert args.metrics_port is None
        assert args.metrics_pushgateway is None

    @pytest.mark.parametrize("value", ["0", "-5", "ten"])
    def test_migrate_rejects_invalid_batch_size(self, value):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["migrate", "--config", "m.json", "--batch-size", value])

    def test_config_is_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["compare"])


class TestGetCredentialsFromVaultOrEnv:
    """Tests for get_credentials_from_vault_or_env function"""

    def test_credentials_from_environment(self):
        args = argparse.Namespace(use_vault=False)

        source, target = get_credentials_from_vault_or_env(args)

        assert source["url"] == "https://source.example.com"
        assert target["url"] == "https://target.example.com"
        assert source["client_secret"] == "secret"

    def test_arguments_override_environment(self):
        args = argparse.Namespace(
            use_vault=False, source_url="https://dev", target_url=None,
            tenant_id=None, client_id="cli-client", client_secret=None,
        )

        source, target = get_credentials_from_vault_or_env(args)

        assert source["url"] == "https://dev"
        assert target["url"] == "https://target.example.com"
        assert source["client_id"] == target["client_id"] == "cli-client"

    def test_missing_settings(self, monkeypatch):
        monkeypatch.delenv("REFSYNC_TARGET_URL")

        with pytest.raises(ConfigurationError, match=r"target connection setting\(s\): url"):
            get_credentials_from_vault_or_env(argparse.Namespace(use_vault=False))

    @patch("refsync.cli.credentials.VaultClient")
    def test_credentials_from_vault(self, mock_vault_client_class):
        """Test successful credential retrieval from Vault"""
        # Arrange
        mock_vault_client = MagicMock()
        mock_vault_client_class.return_value = mock_vault_client
        mock_vault_client.get_service_credentials.side_effect = [
            {"url": "https://dev", "tenant_id": "t", "client_id": "c", "client_secret": "s"},
            {"url": "https://test", "tenant_id": "t", "client_id": "c", "client_secret": "s"},
        ]

        # Act
        source, target = get_credentials_from_vault_or_env(argparse.Namespace(use_vault=True))

        # Assert
        assert source["url"] == "https://dev"
        assert target["url"] == "https://test"
        assert [c.args[0] for c in mock_vault_client.get_service_credentials.call_args_list] == [
            "source", "target",
        ]

    @patch("refsync.cli.credentials.VaultClient")
    def test_vault_failure(self, mock_vault_client_class):
        mock_vault_client_class.side_effect = ValueError("Vault token not provided")

        with pytest.raises(ConfigurationError, match="Vault"):
            get_credentials_from_vault_or_env(argparse.Namespace(use_vault=True))

    def test_create_services(self):
        config = {"url": "https://dev", "tenant_id": "t", "client_id": "c", "client_secret": "s"}

        source, target = create_services(config, {**config, "url": "https://test"})

        assert isinstance(source, WebApiRecordService)
        assert source.url == "https://dev"
        assert target.environment == "https://test"


class TestCmdCompare:
    """Tests for cmd_compare function"""

    def _args(self, config_path, **overrides):
        args = create_parser().parse_args(["compare", "--config", config_path])
        for name, value in overrides.items():
            setattr(args, name, value)
        return args

    @patch("refsync.cli.commands.create_services")
    def test_in_sync_exits_zero(self, mock_create_services, tmp_path, capsys):
        mock_create_services.return_value = (build_source(), _in_sync_target())

        code = _exit_code(cmd_compare, self._args(_write_config(tmp_path, COMPARE_CONFIG)))

        assert code == 0
        assert "Status: PASS" in capsys.readouterr().out

    @patch("refsync.cli.commands.create_services")
    def test_differences_exit_one(self, mock_create_services, tmp_path):
        mock_create_services.return_value = (build_source(), build_target())
        output = tmp_path / "out" / "diff.csv"

        code = _exit_code(cmd_compare, self._args(
            _write_config(tmp_path, COMPARE_CONFIG), output=str(output), format="csv",
        ))

        assert code == 1
        lines = output.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("Table,Record ID")
        assert len(lines) == 1 + 3 + 2

    def test_missing_config_exits_two(self, tmp_path):
        code = _exit_code(cmd_compare, self._args(str(tmp_path / "missing.json")))

        assert code == 2

    def test_invalid_config_exits_two(self, tmp_path):
        code = _exit_code(cmd_compare, self._args(_write_config(tmp_path, {"tables": []})))

        assert code == 2

    @patch("refsync.cli.commands.TableComparer")
    @patch("refsync.cli.commands.create_services")
    def test_unexpected_failure_exits_one(self, mock_create_services, mock_comparer, tmp_path):
        mock_create_services.return_value = (build_source(), build_target())
        mock_comparer.return_value.compare.side_effect = RuntimeError("boom")

        code = _exit_code(cmd_compare, self._args(_write_config(tmp_path, COMPARE_CONFIG)))

        assert code == 1


class TestCmdMigrate:
    """Tests for cmd_migrate function"""

    def _args(self, config_path, *extra):
        return create_parser().parse_args(["migrate", "--config", config_path, *extra])

    @patch("refsync.cli.commands.create_services")
    def test_successful_migration(self, mock_create_services, tmp_path, capsys):
        # Arrange
        target = build_target()
        mock_create_services.return_value = (build_source(), target)

        # Act
        code = _exit_code(cmd_migrate, self._args(_write_config(tmp_path, MIGRATE_CONFIG)))

        # Assert
        assert code == 0
        assert set(target.records("new_country")) == {"c1", "c2", "c3"}
        assert target.associations("new_country_tag") == {("c1", "t1"), ("c2", "t2")}
        assert "Status: COMPLETED" in capsys.readouterr().out

    @patch("refsync.cli.commands.create_services")
    def test_batch_size_from_config_and_flag(self, mock_create_services, tmp_path):
        config_path = _write_config(tmp_path, MIGRATE_CONFIG)

        target = build_target()
        mock_create_services.return_value = (build_source(), target)
        _exit_code(cmd_migrate, self._args(config_path))
        assert [len(b) for b in target.batches][:2] == [2, 1]

        target = build_target()
        mock_create_services.return_value = (build_source(), target)
        _exit_code(cmd_migrate, self._args(config_path, "--batch-size", "1"))
        assert [len(b) for b in target.batches][:3] == [1, 1, 1]

    @patch("refsync.cli.commands.create_services")
    def test_dry_run_json_report(self, mock_create_services, tmp_path):
        target = build_target()
        mock_create_services.return_value = (build_source(), target)
        output = tmp_path / "migration.json"

        code = _exit_code(cmd_migrate, self._args(
            _write_config(tmp_path, MIGRATE_CONFIG),
            "--dry-run", "--output", str(output), "--format", "json",
        ))

        assert code == 0
        assert target.write_calls == 0
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["status"] == "DRY_RUN"
        assert report["totals"]["upserted"] == 3

    @patch("refsync.cli.commands.create_services")
    def test_record_errors_exit_one(self, mock_create_services, tmp_path):
        target = build_target()
        target.fail_record("c3", "Invalid status transition")
        mock_create_services.return_value = (build_source(), target)

        code = _exit_code(cmd_migrate, self._args(_write_config(tmp_path, MIGRATE_CONFIG)))

        assert code == 1

    @patch("refsync.cli.commands.create_services")
    def test_preparation_error_exits_two(self, mock_create_services, tmp_path):
        target = build_target()
        mock_create_services.return_value = (build_source(), target)
        config = {"tables": [{"logicalName": "new_missing"}]}

        code = _exit_code(cmd_migrate, self._args(_write_config(tmp_path, config)))

        assert code == 2
        assert target.write_calls == 0

    @patch("refsync.cli.commands.get_credentials_from_vault_or_env")
    def test_credentials_error_exits_two(self, mock_credentials, tmp_path):
        mock_credentials.side_effect = ConfigurationError("Missing source connection setting(s)")

        code = _exit_code(cmd_migrate, self._args(_write_config(tmp_path, MIGRATE_CONFIG)))

        assert code == 2


class TestCmdReport:
    """Tests for cmd_report function"""

    @pytest.fixture
    def saved_report(self, tmp_path, source_service, target_service):
        """JSON report saved by a comparison run"""
        with patch("refsync.cli.commands.create_services") as mock_create_services:
            mock_create_services.return_value = (source_service, target_service)
            path = tmp_path / "report.json"
            args = create_parser().parse_args([
                "compare", "--config", _write_config(tmp_path, COMPARE_CONFIG),
                "--output", str(path), "--format", "json",
            ])
            _exit_code(cmd_compare, args)
        return path

    def test_console(self, saved_report, capsys):
        args = create_parser().parse_args(["report", "--input", str(saved_report)])

        cmd_report(args)

        assert "REFERENCE DATA COMPARISON REPORT" in capsys.readouterr().out

    def test_csv_export(self, saved_report, tmp_path):
        output = tmp_path / "report.csv"
        args = create_parser().parse_args([
            "report", "--input", str(saved_report), "--format", "csv", "--output", str(output),
        ])

        cmd_report(args)

        assert output.read_text(encoding="utf-8").startswith("Table,Record ID")

    def test_csv_requires_output(self, saved_report):
        args = create_parser().parse_args(["report", "--input", str(saved_report), "--format", "csv"])

        assert _exit_code(cmd_report, args) == 1

    def test_missing_input(self, tmp_path):
        args = create_parser().parse_args(["report", "--input", str(tmp_path / "none.json")])

        assert _exit_code(cmd_report, args) == 1


class TestMain:
    """Tests for main function"""

    @patch("refsync.cli.setup_logging")
    def test_no_command_prints_help(self, mock_setup_logging, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "usage: refsync" in capsys.readouterr().out

    @patch("refsync.cli.cmd_migrate")
    @patch("refsync.cli.instrument_requests")
    @patch("refsync.cli.initialize_tracing")
    @patch("refsync.cli.setup_logging")
    def test_migrate_dispatch(
        self, mock_setup_logging, mock_tracing, mock_instrument, mock_cmd_migrate
    ):
        main(["--log-json", "migrate", "--config", "m.json", "--dry-run"])

        mock_setup_logging.assert_called_once_with(level="INFO", log_file=None, json_format=True)
        mock_tracing.assert_called_once()
        mock_instrument.assert_called_once()
        assert mock_cmd_migrate.call_args.args[0].dry_run is True

    @patch("refsync.cli.cmd_report")
    @patch("refsync.cli.initialize_tracing")
    @patch("refsync.cli.setup_logging")
    def test_report_dispatch_skips_tracing(self, mock_setup_logging, mock_tracing, mock_cmd_report):
        main(["report", "--input", "r.json"])

        mock_tracing.assert_not_called()
        mock_cmd_report.assert_called_once()
