"""In-memory versioned store of criteria snapshots."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import structlog

from .config import ConfigManager
from .errors import ConfigurationError, CriteriaNotFoundError
from .schemas.criteria import Criteria, load_criteria, slugify

InvalidationListener = Callable[[str], None]


class CriteriaRepository:
    """Keeps every saved version of each criteria as an immutable snapshot.

    Lookups accept either the criteria id or its display name. Saving a new
    version notifies invalidation listeners with the criteria id so caches
    drop results computed against earlier definitions.
    """

    def __init__(self, listeners: Iterable[InvalidationListener] = ()) -> None:
        self._versions: dict[str, list[Criteria]] = {}
        self._names: dict[str, str] = {}
        self._listeners: list[InvalidationListener] = list(listeners)
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(__name__)

    def add_listener(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    def save(self, criteria: Criteria | Mapping[str, Any]) -> Criteria:
        """Store ``criteria`` as the next version and return the snapshot."""
        definition = load_criteria(criteria)
        with self._lock:
            history = self._versions.setdefault(definition.id, [])
            version = history[-1].version + 1 if history else definition.version
            snapshot = definition.model_copy(update={"version": version})
            history.append(snapshot)
            self._names[definition.name.lower()] = definition.id
        self._logger.info("repository.saved", criteria_id=snapshot.id, version=snapshot.version)
        for listener in self._listeners:
            listener(snapshot.id)
        return snapshot

    def get(self, name: str) -> Criteria:
        return self._history(name)[-1]

    def get_version(self, name: str, version: int) -> Criteria:
        for snapshot in self._history(name):
            if snapshot.version == version:
                return snapshot
        raise CriteriaNotFoundError(f"Criteria '{name}' has no version {version}")

    def versions(self, name: str) -> list[int]:
        return [snapshot.version for snapshot in self._history(name)]

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._versions)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._lookup_id(name) is not None

    def compare_versions(self, name: str, first: int, second: int) -> dict[str, Any]:
        """Summarize rule-level differences between two versions."""
        old = self.get_version(name, first)
        new = self.get_version(name, second)
        old_rules = {rule.id: rule for rule in old.iter_active_rules()}
        new_rules = {rule.id: rule for rule in new.iter_active_rules()}
        settings = ("pass_threshold", "scoring_method", "group_logic", "decision_thresholds", "default_decision")
        return {
            "criteria_id": old.id,
            "from_version": first,
            "to_version": second,
            "added_rules": [new_rules[rule_id].structure() for rule_id in new_rules if rule_id not in old_rules],
            "removed_rules": [old_rules[rule_id].structure() for rule_id in old_rules if rule_id not in new_rules],
            "changed_settings": {
                key: {"from": _plain(getattr(old, key)), "to": _plain(getattr(new, key))}
                for key in settings
                if getattr(old, key) != getattr(new, key)
            },
            "fingerprint_changed": old.fingerprint() != new.fingerprint(),
        }

    def load_directory(self, path: str | Path) -> list[Criteria]:
        """Save every ``*.yaml``, ``*.yml`` and ``*.json`` definition under ``path``."""
        manager = ConfigManager(path)
        saved: list[Criteria] = []
        errors: list[str] = []
        for name in manager.names():
            try:
                saved.append(self.save(manager.load(name)))
            except ConfigurationError as exc:
                errors.append(f"{name}: {exc}")
        if errors:
            raise ConfigurationError(f"Failed to load criteria from {path}", errors=errors)
        return saved

    def _history(self, name: str) -> list[Criteria]:
        criteria_id = self._lookup_id(name)
        if criteria_id is None:
            raise CriteriaNotFoundError(f"Criteria '{name}' not found")
        with self._lock:
            return list(self._versions[criteria_id])

    def _lookup_id(self, name: str) -> str | None:
        with self._lock:
            if name in self._versions:
                return name
            criteria_id = self._names.get(name.lower())
            if criteria_id is None and slugify(name) in self._versions:
                criteria_id = slugify(name)
            return criteria_id


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_plain(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return getattr(value, "value", value)


__all__ = ["CriteriaRepository", "InvalidationListener"]
