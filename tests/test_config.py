"""
Tests for the configuration module.
"""

import pytest
import yaml

from secops_toolkit.config import Config, create_default_config


class TestConfig:
    """Tests for Config dataclass."""

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        """Keep stray config files and environment out of the tests."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        for var in ("SECOPS_DEFENDER_URL", "SECOPS_HTTP_TIMEOUT", "SECOPS_MAX_EVENTS", "SECOPS_OUTPUT_DIR"):
            monkeypatch.delenv(var, raising=False)

    def test_default_config(self):
        config = Config.load()

        assert config.endpoints.defender_url == "https://api.securitycenter.microsoft.com"
        assert config.endpoints.graph_url == "https://graph.microsoft.com/v1.0"
        assert config.http.timeout == 60.0
        assert config.collection.max_events == 1000
        assert config.collection.skip_event_logs is False
        assert config.output.signin_output is None

    def test_config_from_yaml(self, tmp_path):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("""
endpoints:
  graph_url: https://graph.example.test/v1.0
collection:
  max_events: 250
  recent_paths:
    - /srv/uploads
unknown_section:
  ignored: true
""")

        config = Config.load(config_file)

        assert config.endpoints.graph_url == "https://graph.example.test/v1.0"
        assert config.endpoints.defender_url == "https://api.securitycenter.microsoft.com"
        assert config.collection.max_events == 250
        assert config.collection.recent_paths == ["/srv/uploads"]

    def test_local_config_file_is_found(self, tmp_path):
        (tmp_path / "secops.yaml").write_text("http:\n  timeout: 15\n")

        config = Config.load()

        assert config.http.timeout == 15

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        (tmp_path / "secops.yaml").write_text("collection:\n  max_events: 250\n")
        monkeypatch.setenv("SECOPS_MAX_EVENTS", "42")
        monkeypatch.setenv("SECOPS_HTTP_TIMEOUT", "5.5")

        config = Config.load()

        assert config.collection.max_events == 42
        assert config.http.timeout == 5.5

    def test_save_and_reload(self, tmp_path):
        config = Config()
        config.output.rules_dir = "/data/rules"
        path = tmp_path / "nested" / "config.yaml"

        config.save(path)
        reloaded = Config.load(path)

        assert reloaded.output.rules_dir == "/data/rules"
        assert reloaded.to_dict() == config.to_dict()

    def test_create_default_config(self, tmp_path):
        path = create_default_config(tmp_path / "config.yaml")

        data = yaml.safe_load(path.read_text())
        assert data["endpoints"]["sentinel_api_version"] == "2023-02-01"
        assert data["collection"]["skip_event_logs"] is False
        assert Config.load(path).to_dict() == Config().to_dict()
