"""
Tests for the CLI module.
"""

import httpx
import pytest
import yaml
from click.testing import CliRunner
from unittest.mock import patch

from secops_toolkit.cli import main
from secops_toolkit.core.collector import CategorySpec
from secops_toolkit.core.remote import open_session
from secops_toolkit.core.reporter import read_json

TOKEN_VARS = ("SECOPS_DEFENDER_TOKEN", "SECOPS_ARM_TOKEN", "SECOPS_GRAPH_TOKEN")


class TestCLI:
    """Tests for CLI commands."""

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        """Run every command away from real config files and tokens."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        for var in TOKEN_VARS:
            monkeypatch.delenv(var, raising=False)

    @pytest.fixture
    def runner(self):
        """Create CLI runner."""
        return CliRunner()

    @pytest.fixture
    def remote(self):
        """Patch the CLI's session factory so requests go to ``handler``."""
        def install(handler):
            def fake_open_session(base_url, token, **kwargs):
                return open_session(base_url, token, transport=httpx.MockTransport(handler))
            return patch("secops_toolkit.cli.open_session", side_effect=fake_open_session)
        return install

    def test_cli_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "SecOps Toolkit" in result.output
        for command in ("isolate", "collect", "export-rules", "signins", "init-config"):
            assert command in result.output

    def test_missing_config_file(self, runner):
        result = runner.invoke(main, ["-c", "nope.yaml", "signins"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_invalid_isolation_type_makes_no_call(self, runner):
        with patch("secops_toolkit.cli.open_session") as session:
            result = runner.invoke(main, [
                "isolate", "--machine-id", "abc123", "--isolation-type", "Partial", "--token", "t",
            ])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert session.call_count == 0

    def test_missing_machine_id(self, runner):
        with patch("secops_toolkit.cli.open_session") as session:
            result = runner.invoke(main, ["isolate", "--token", "t"])

        assert result.exit_code == 1
        assert session.call_count == 0

    def test_isolation_success(self, runner, remote):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer env-token"
            return httpx.Response(201, json={"id": "req-1", "status": "Pending"})

        with remote(handler):
            result = runner.invoke(
                main,
                ["isolate", "--machine-id", "abc123", "--isolation-type", "selective"],
                env={"SECOPS_DEFENDER_TOKEN": "env-token"},
            )

        assert result.exit_code == 0
        assert "req-1" in result.output
        assert "pending" in result.output
        assert "Selective" in result.output

    def test_isolation_ambiguous_is_not_fatal(self, runner, remote):
        def handler(request):
            return httpx.Response(200, json={"status": "Pending"})

        with remote(handler):
            result = runner.invoke(main, ["isolate", "--machine-id", "abc123", "--token", "t"])

        assert result.exit_code == 0
        assert "Warning:" in result.output

    def test_isolation_failed_status(self, runner, remote):
        def handler(request):
            return httpx.Response(201, json={"id": "req-9", "status": "Failed"})

        with remote(handler):
            result = runner.invoke(main, ["isolate", "--machine-id", "abc123", "--token", "t"])

        assert result.exit_code == 1
        assert "req-9" in result.output

    def test_isolation_http_error(self, runner, remote):
        def handler(request):
            return httpx.Response(404, json={"error": {"code": "ResourceNotFound", "message": "Machine not found"}})

        with remote(handler):
            result = runner.invoke(main, ["isolate", "--machine-id", "abc123", "--token", "t"])

        assert result.exit_code == 1
        assert "Machine not found" in result.output

    def test_signins_zero_events(self, runner, remote, tmp_path):
        seen = []
        output = tmp_path / "signins.csv"

        def handler(request):
            seen.append(request.url.params["$filter"])
            return httpx.Response(200, json={"value": []})

        with remote(handler):
            result = runner.invoke(main, [
                "signins", "--days-back", "7", "--risk-level", "high", "-o", str(output), "--token", "t",
            ])

        assert result.exit_code == 0
        assert "Total Events: 0" in result.output
        assert not output.exists()
        assert seen[0].endswith("riskLevelDuringSignIn eq 'high'")

    def test_signins_writes_csv(self, runner, remote, tmp_path, sample_signins):
        output = tmp_path / "reports" / "signins.csv"

        def handler(request):
            return httpx.Response(200, json={"value": sample_signins})

        with remote(handler):
            result = runner.invoke(main, ["signins", "-o", str(output), "--token", "t"])

        assert result.exit_code == 0
        assert "Total Events: 2" in result.output
        lines = output.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("createdDateTime,userPrincipalName,")
        assert len(lines) == 3

    def test_signins_missing_token(self, runner):
        with patch("secops_toolkit.cli.open_session") as session:
            result = runner.invoke(main, ["signins"])

        assert result.exit_code == 1
        assert "SECOPS_GRAPH_TOKEN" in result.output
        assert session.call_count == 0

    @pytest.mark.parametrize("days", ["0", "31", "week"])
    def test_signins_days_back_out_of_range(self, runner, days):
        result = runner.invoke(main, ["signins", "--days-back", days, "--token", "t"])

        assert result.exit_code == 1

    def test_export_rules_partial_failure(self, runner, remote, tmp_path, sample_alert_rules):
        target = tmp_path / "rules"
        target.mkdir()
        (target / "Rule_B.json").mkdir()

        def handler(request):
            return httpx.Response(200, json={"value": sample_alert_rules})

        with remote(handler):
            result = runner.invoke(main, [
                "export-rules",
                "--subscription-id", "sub",
                "--resource-group", "rg",
                "--workspace", "ws",
                "-o", str(target),
                "--token", "t",
            ])

        assert result.exit_code == 0
        assert "Rule/B" in result.output

        summary = read_json(target / "export_summary.json")
        assert summary["found"] == 3
        assert summary["exported"] == 2
        assert [f["rule"] for f in summary["failed"]] == ["Rule/B"]

    def test_export_rules_missing_workspace(self, runner):
        with patch("secops_toolkit.cli.open_session") as session:
            result = runner.invoke(main, [
                "export-rules", "--subscription-id", "sub", "--resource-group", "rg", "--token", "t",
            ])

        assert result.exit_code == 1
        assert session.call_count == 0

    def test_collect_requires_privilege(self, runner, tmp_path):
        with patch("secops_toolkit.core.collector.is_elevated", return_value=False):
            result = runner.invoke(main, ["collect", "-o", str(tmp_path / "triage")])

        assert result.exit_code == 1
        assert "privileges" in result.output
        assert list((tmp_path / "triage").iterdir()) == []

    def test_collect(self, runner, tmp_path, fake_categories):
        base = tmp_path / "triage"

        with patch("secops_toolkit.core.collector.DEFAULT_CATEGORIES", fake_categories), \
             patch("secops_toolkit.core.collector.is_elevated", return_value=True):
            result = runner.invoke(main, ["collect", "-o", str(base), "--skip-event-logs"])

        assert result.exit_code == 0
        run_dirs = list(base.iterdir())
        assert len(run_dirs) == 1

        manifest = read_json(run_dirs[0] / "manifest.json")
        assert manifest["categories_attempted"] == 3
        assert manifest["categories_failed"] == 1
        assert manifest["categories_skipped"] == 1
        assert "access denied" in result.output

    def test_collect_uses_configured_max_events(self, runner, tmp_path):
        seen = []

        def probe(ctx):
            seen.append(ctx.max_events)
            return []

        (tmp_path / "secops.yaml").write_text("collection:\n  max_events: 25\n")

        with patch("secops_toolkit.core.collector.DEFAULT_CATEGORIES", [CategorySpec("processes", probe)]):
            result = runner.invoke(main, [
                "collect", "-o", str(tmp_path / "triage"), "--no-elevation-check",
            ])

        assert result.exit_code == 0
        assert seen == [25]

    def test_init_config(self, runner, tmp_path):
        target = tmp_path / "conf" / "secops.yaml"

        result = runner.invoke(main, ["init-config", str(target)])

        assert result.exit_code == 0
        assert target.exists()
        assert "endpoints:" in target.read_text()

    def test_export_rules_summary_does_not_replace_rule(self, runner, remote, tmp_path):
        target = tmp_path / "rules"
        rule = {"name": "a", "kind": "Scheduled", "properties": {"displayName": "export summary"}}

        def handler(request):
            return httpx.Response(200, json={"value": [rule]})

        with remote(handler):
            result = runner.invoke(main, [
                "export-rules",
                "--subscription-id", "sub",
                "--resource-group", "rg",
                "--workspace", "ws",
                "-o", str(target),
                "--token", "t",
            ])

        assert result.exit_code == 0
        assert read_json(target / "export_summary_2.json") == rule
        assert read_json(target / "export_summary.json")["files"] == ["export_summary_2.json"]

    def test_malformed_config_file(self, runner, tmp_path):
        (tmp_path / "secops.yaml").write_text("endpoints: [unclosed\n")

        result = runner.invoke(main, ["signins", "--token", "t"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Traceback" not in result.output

    def test_config_section_not_a_mapping(self, runner, tmp_path):
        (tmp_path / "secops.yaml").write_text("http: 30\n")

        result = runner.invoke(main, ["signins", "--token", "t"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_invalid_environment_override(self, runner):
        result = runner.invoke(main, ["signins", "--token", "t"], env={"SECOPS_HTTP_TIMEOUT": "abc"})

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_init_config_current_settings(self, runner, tmp_path):
        (tmp_path / "secops.yaml").write_text("output:\n  timestamp_format: '%d/%m/%Y'\n")
        target = tmp_path / "effective.yaml"

        result = runner.invoke(
            main,
            ["init-config", str(target), "--current"],
            env={"SECOPS_MAX_EVENTS": "42"},
        )

        assert result.exit_code == 0
        data = yaml.safe_load(target.read_text())
        assert data["collection"]["max_events"] == 42
        assert data["output"]["timestamp_format"] == "%d/%m/%Y"
