"""Configuration and definition file loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigurationError

_SUFFIXES = (".yaml", ".yml", ".json")


class ConfigManager:
    """Loads YAML or JSON documents from a base directory by name."""

    def __init__(self, base_path: str | Path):
        self._base_path = Path(base_path)

    def load(self, name: str) -> Any:
        """Load a document by name without file extension."""
        for suffix in _SUFFIXES:
            path = self._base_path / f"{name}{suffix}"
            if path.is_file():
                return load_document(path)
        raise FileNotFoundError(f"No configuration named '{name}' under {self._base_path}")

    def names(self) -> list[str]:
        return sorted({path.stem for path in self._base_path.iterdir() if path.suffix in _SUFFIXES})


def load_document(path: Path) -> Any:
    """Parse a ``.json`` file as JSON and anything else as YAML."""
    with path.open("r", encoding="utf-8") as handle:
        try:
            if path.suffix == ".json":
                return json.load(handle)
            return yaml.safe_load(handle)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Cannot parse {path.name}: {exc}") from exc


__all__ = ["ConfigManager", "load_document"]
