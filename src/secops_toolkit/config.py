"""
Configuration management for SecOps Toolkit.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class EndpointSettings:
    """Base URLs of the remote security-management APIs."""

    defender_url: str = "https://api.securitycenter.microsoft.com"
    management_url: str = "https://management.azure.com"
    graph_url: str = "https://graph.microsoft.com/v1.0"
    sentinel_api_version: str = "2023-02-01"


@dataclass
class HttpSettings:
    """HTTP transport settings."""

    timeout: float = 60.0
    user_agent: str = "secops-toolkit/0.1.0"


@dataclass
class CollectionSettings:
    """Host artifact collection settings."""

    output_dir: str = "./triage"
    max_events: int = 1000
    recent_days: int = 7
    recent_paths: list[str] = field(default_factory=list)
    skip_event_logs: bool = False


@dataclass
class OutputSettings:
    """Output configuration."""

    timestamp_format: str = "%Y-%m-%d %H:%M:%S UTC"
    rules_dir: str = "./sentinel-rules"
    signin_output: str | None = None


@dataclass
class Config:
    """Main configuration container."""

    endpoints: EndpointSettings = field(default_factory=EndpointSettings)
    http: HttpSettings = field(default_factory=HttpSettings)
    collection: CollectionSettings = field(default_factory=CollectionSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        """
        Load configuration from file.

        Searches in order:
        1. Provided path
        2. Current directory (./secops.yaml)
        3. User config (~/.secops/config.yaml)
        4. Default values
        """
        config = cls()

        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        paths_to_try.extend([
            Path("./secops.yaml"),
            Path("./secops.yml"),
            Path.home() / ".secops" / "config.yaml",
            Path.home() / ".secops" / "config.yml",
        ])

        for path in paths_to_try:
            if path.exists():
                config._load_from_file(path)
                break

        config._load_from_env()

        return config

    def _load_from_file(self, path: Path) -> None:
        """Load settings from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping of sections")

        for section in ("endpoints", "http", "collection", "output"):
            values = data.get(section) or {}
            if not isinstance(values, dict):
                raise ValueError(f"section '{section}' in {path} must be a mapping")
            section_obj = getattr(self, section)
            for key, value in values.items():
                if hasattr(section_obj, key):
                    setattr(section_obj, key, value)

    def _load_from_env(self) -> None:
        """Load settings from environment variables."""
        env_mappings = {
            "SECOPS_DEFENDER_URL": ("endpoints", "defender_url"),
            "SECOPS_MANAGEMENT_URL": ("endpoints", "management_url"),
            "SECOPS_GRAPH_URL": ("endpoints", "graph_url"),
            "SECOPS_HTTP_TIMEOUT": ("http", "timeout"),
            "SECOPS_OUTPUT_DIR": ("collection", "output_dir"),
            "SECOPS_MAX_EVENTS": ("collection", "max_events"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                section_obj = getattr(self, section)

                # Type conversion
                current = getattr(section_obj, key)
                if isinstance(current, bool):
                    value = value.lower() in ("true", "1", "yes")
                elif isinstance(current, float):
                    value = float(value)
                elif isinstance(current, int):
                    value = int(value)

                setattr(section_obj, key, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        return {
            "endpoints": {
                "defender_url": self.endpoints.defender_url,
                "management_url": self.endpoints.management_url,
                "graph_url": self.endpoints.graph_url,
                "sentinel_api_version": self.endpoints.sentinel_api_version,
            },
            "http": {
                "timeout": self.http.timeout,
                "user_agent": self.http.user_agent,
            },
            "collection": {
                "output_dir": self.collection.output_dir,
                "max_events": self.collection.max_events,
                "recent_days": self.collection.recent_days,
                "recent_paths": self.collection.recent_paths,
                "skip_event_logs": self.collection.skip_event_logs,
            },
            "output": {
                "timestamp_format": self.output.timestamp_format,
                "rules_dir": self.output.rules_dir,
                "signin_output": self.output.signin_output,
            },
        }

    def save(self, path: str | Path) -> None:
        """Save configuration to file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# Default config file template
DEFAULT_CONFIG_TEMPLATE = """# SecOps Toolkit Configuration
# Access tokens are never read from this file. Pass --token or set
# SECOPS_DEFENDER_TOKEN / SECOPS_ARM_TOKEN / SECOPS_GRAPH_TOKEN.

# Remote APIs
endpoints:
  defender_url: https://api.securitycenter.microsoft.com
  management_url: https://management.azure.com
  graph_url: https://graph.microsoft.com/v1.0
  sentinel_api_version: "2023-02-01"

# HTTP transport
http:
  timeout: 60
  user_agent: secops-toolkit/0.1.0

# Host artifact collection
collection:
  output_dir: ./triage
  max_events: 1000
  recent_days: 7
  recent_paths: []
  skip_event_logs: false

# Output Configuration
output:
  timestamp_format: "%Y-%m-%d %H:%M:%S UTC"
  rules_dir: ./sentinel-rules
  signin_output: null
"""


def create_default_config(path: str | Path | None = None) -> Path:
    """Create default configuration file."""
    if path is None:
        path = Path.home() / ".secops" / "config.yaml"

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG_TEMPLATE)

    return path
