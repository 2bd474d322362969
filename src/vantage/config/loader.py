"""
Layered configuration loading.

Files are read lowest priority first and merged key by key:
~/.vantage/config.yaml, then .vantage/config.yaml and
.vantage/config.local.yaml in the project, then an explicit --config file.
CLI overrides go on top; VANTAGE_* variables are read by the schema.
"""

import os
from pathlib import Path
from typing import Any

import yaml

from vantage.config.schema import VantageConfig

CONFIG_DIRNAME = ".vantage"


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated by ``override``, recursing into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = value
    return merged


def read_config_file(path: Path) -> dict[str, Any]:
    """A YAML mapping, or {} for a missing, empty or non-mapping file."""
    if not path.is_file():
        return {}
    data = yaml.safe_load(path.read_text())
    return data if isinstance(data, dict) else {}


class ConfigLoader:
    """Resolve a VantageConfig from config files and overrides."""

    def __init__(
        self,
        global_config_dir: Path | None = None,
        project_root: Path | None = None,
    ) -> None:
        """
        Args:
            global_config_dir: User-wide directory (default: ~/.vantage)
            project_root: Directory holding .vantage/ (default: cwd)
        """
        self.global_config_dir = (global_config_dir or Path.home() / CONFIG_DIRNAME).expanduser()
        self.project_root = project_root or Path.cwd()

    def layers(self, config_file: Path | None = None) -> list[Path]:
        """Config file paths, lowest priority first."""
        project_dir = self.project_root / CONFIG_DIRNAME
        paths = [
            self.global_config_dir / "config.yaml",
            project_dir / "config.yaml",
            project_dir / "config.local.yaml",
        ]
        if config_file:
            paths.append(config_file)
        return paths

    def load(
        self,
        cli_overrides: dict[str, Any] | None = None,
        config_file: Path | None = None,
    ) -> VantageConfig:
        data: dict[str, Any] = {}
        for path in self.layers(config_file):
            data = merge_config(data, read_config_file(path))
        if cli_overrides:
            data = merge_config(data, cli_overrides)

        config = VantageConfig(**data)
        if not config.provider.api_key and os.environ.get("OPENAI_API_KEY"):
            config.provider.api_key = os.environ["OPENAI_API_KEY"]
        return config


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    config_file: Path | None = None,
) -> VantageConfig:
    """Load configuration for the current working directory."""
    return ConfigLoader().load(cli_overrides, config_file)
