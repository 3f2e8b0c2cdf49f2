"""Escalation rule loading and the process-wide rule snapshot.

Rules are read from a JSON file shaped as ``{"rules": [{...}, ...]}``.
A missing or unreadable file is fatal; a single malformed entry is logged
and skipped.

Readers never see a half-built rule list: ``RuleRegistry.reload`` builds a
new immutable ``RuleSet`` and swaps the reference in one assignment.
"""

import json
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

from pydantic import ValidationError

from fleet_alerts.config import settings
from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import AlertType
from fleet_alerts.schemas.escalation_rule import EscalationRule

logger = get_logger(__name__)


class RuleConfigError(Exception):
    """Raised when the rule configuration cannot be read as a whole."""


class RuleSource(Protocol):
    """Anything that can produce the full list of rules."""

    name: str

    def load(self) -> list[EscalationRule]: ...


def parse_rules(config: Any, source_name: str = "<memory>") -> list[EscalationRule]:
    """Parse the decoded rule file.

    Args:
        config: Decoded JSON document.
        source_name: Used in log messages only.

    Returns:
        Valid rules in file order.

    Raises:
        RuleConfigError: If the document is not an object with a ``rules`` list.
    """
    if not isinstance(config, dict):
        raise RuleConfigError(
            f"Rule configuration {source_name} must be a JSON object"
        )

    rules_data = config.get("rules")
    if rules_data is None:
        logger.warning("No rules found in configuration", source=source_name)
        return []
    if not isinstance(rules_data, list):
        raise RuleConfigError(
            f"'rules' in {source_name} must be a list, got {type(rules_data).__name__}"
        )

    rules: list[EscalationRule] = []
    for index, entry in enumerate(rules_data):
        try:
            rules.append(EscalationRule.model_validate(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed rule",
                source=source_name,
                index=index,
                errors=e.errors(include_url=False),
            )

    return rules


class JsonFileRuleSource:
    """Loads rules from a JSON file on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.name = str(self.path)

    def load(self) -> list[EscalationRule]:
        """Read and parse the rule file.

        Raises:
            RuleConfigError: If the file is missing, unreadable or not valid JSON.
        """
        if not self.path.is_file():
            raise RuleConfigError(f"Rules configuration file not found: {self.path}")

        try:
            with self.path.open(encoding="utf-8") as fh:
                config = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise RuleConfigError(
                f"Failed to load rules configuration from {self.path}: {e}"
            ) from e

        return parse_rules(config, self.name)


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of the active rules.

    When several rules target the same alert type, the first one in file
    order wins.
    """

    rules: tuple[EscalationRule, ...] = ()
    source: str | None = None
    loaded_at: datetime | None = None
    _by_type: Mapping[AlertType, EscalationRule] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        by_type: dict[AlertType, EscalationRule] = {}
        for rule in self.rules:
            if rule.alert_type in by_type:
                logger.warning(
                    "Duplicate rule ignored, first match wins",
                    alert_type=rule.alert_type.value,
                )
                continue
            by_type[rule.alert_type] = rule
        object.__setattr__(self, "_by_type", MappingProxyType(by_type))

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[EscalationRule],
        source: str | None = None,
    ) -> "RuleSet":
        return cls(rules=tuple(rules), source=source, loaded_at=datetime.now(UTC))

    def get(self, alert_type: AlertType) -> EscalationRule | None:
        """Rule for ``alert_type``, or None when no rule is configured."""
        return self._by_type.get(alert_type)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


EMPTY_RULE_SET = RuleSet()


class RuleRegistry:
    """Holds the current rule snapshot and swaps it on reload."""

    def __init__(self, source: RuleSource):
        self.source = source
        self._snapshot: RuleSet = EMPTY_RULE_SET
        self._reload_lock = threading.Lock()

    @property
    def current(self) -> RuleSet:
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot.loaded_at is not None

    def reload(self) -> RuleSet:
        """Rebuild the snapshot from the source and swap it in.

        On failure the previous snapshot stays active.

        Raises:
            RuleConfigError: If the source cannot be read.
        """
        with self._reload_lock:
            rules = self.source.load()
            snapshot = RuleSet.from_rules(rules, source=self.source.name)
            self._snapshot = snapshot

        logger.info(
            "Loaded escalation rules",
            source=self.source.name,
            rule_count=len(snapshot),
        )
        for rule in snapshot:
            logger.debug(
                "Loaded rule",
                alert_type=rule.alert_type.value,
                escalate_if_count=rule.escalate_if_count,
                window_minutes=rule.window_minutes,
                enabled=rule.enabled,
            )
        return snapshot

    def replace(self, snapshot: RuleSet) -> None:
        """Install a prebuilt snapshot."""
        with self._reload_lock:
            self._snapshot = snapshot


# Global registry instance
_registry: RuleRegistry | None = None


def get_rule_registry() -> RuleRegistry:
    """Get or create the process-wide rule registry.

    The registry starts empty; call ``reload()`` to load the configured file.
    """
    global _registry
    if _registry is None:
        _registry = RuleRegistry(JsonFileRuleSource(settings.rules_config_path))
    return _registry


def get_active_rules() -> RuleSet:
    """Current rule snapshot of the process-wide registry."""
    return get_rule_registry().current
