"""Persistence for rules, filter settings and account selection."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from filter_move_mail.errors import (
    ConfigImportError,
    InvalidRuleError,
    RuleNotFoundError,
    RuleStoreError,
)
from filter_move_mail.rules.conditions import RULE_MODEL_CONFIG
from filter_move_mail.rules.engine import AccountScope, Rule

CONFIG_VERSION = "1.0.0"


class FilterSettings(BaseModel):
    """User preferences stored next to the rules."""

    model_config = RULE_MODEL_CONFIG

    apply_on_new_message: bool = Field(
        default=False, description="Run new-mail rules when messages arrive"
    )
    apply_manually: bool = Field(default=True, description="Allow manual runs")
    apply_after_junk: bool = Field(default=False, description="Run after junk classification")
    remove_own_emails: bool = Field(
        default=True, description="Ignore the user's own addresses in address book checks"
    )


class ConfigEnvelope(BaseModel):
    """Exported configuration: rules, settings and account selection."""

    model_config = RULE_MODEL_CONFIG

    version: str
    export_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    filters: list[Rule] = Field(default_factory=list)
    settings: FilterSettings = Field(default_factory=FilterSettings)
    selected_accounts: AccountScope = Field(default_factory=AccountScope)


def validate_rule(rule: Rule) -> None:
    """
    Check that a rule is complete enough to be saved.

    Raises:
        InvalidRuleError: If the rule has no name or no active condition.
    """
    if not rule.name:
        raise InvalidRuleError("Rule name is required")
    if not rule.active_conditions:
        raise InvalidRuleError(f"Rule '{rule.name}' has no condition with a value")


class RuleStore:
    """
    Rules, settings and account selection kept in one YAML document.

    The document has three top-level keys: ``rules`` (ordered), ``settings``
    and ``selected_accounts``. Every save rewrites the whole document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RuleStoreError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise RuleStoreError(f"Unexpected content in {self.path}")
        return data

    def _section(self, model: type[BaseModel], key: str) -> Any:
        try:
            return model.model_validate(self._read().get(key) or {})
        except ValidationError as e:
            raise RuleStoreError(f"Invalid {key} in {self.path}: {e}") from e

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, self.path)

    def _update(self, **sections: Any) -> None:
        data = self._read()
        data.update(sections)
        self._write(data)

    def load_rules(self) -> list[Rule]:
        """Load rules in their stored order."""
        try:
            return [Rule.model_validate(r) for r in self._read().get("rules") or []]
        except ValidationError as e:
            raise RuleStoreError(f"Invalid rule in {self.path}: {e}") from e

    def save_rules(self, rules: list[Rule]) -> None:
        """Validate and save the full ordered rule list."""
        for rule in rules:
            validate_rule(rule)
        self._update(rules=[r.model_dump(mode="json") for r in rules])

    def get_rule(self, rule_id: str) -> Rule:
        for rule in self.load_rules():
            if rule.id == rule_id:
                return rule
        raise RuleNotFoundError(rule_id)

    def load_settings(self) -> FilterSettings:
        """Load settings with defaults filled in for missing keys."""
        return self._section(FilterSettings, "settings")

    def save_settings(self, settings: FilterSettings) -> None:
        self._update(settings=settings.model_dump(mode="json"))

    def load_selected_accounts(self) -> AccountScope:
        return self._section(AccountScope, "selected_accounts")

    def save_selected_accounts(self, scope: AccountScope) -> None:
        self._update(selected_accounts=scope.model_dump(mode="json"))

    def export_config(self) -> ConfigEnvelope:
        """Build an export envelope from the stored state."""
        return ConfigEnvelope(
            version=CONFIG_VERSION,
            filters=self.load_rules(),
            settings=self.load_settings(),
            selected_accounts=self.load_selected_accounts(),
        )

    def import_config(self, config: dict[str, Any] | None) -> ConfigEnvelope:
        """
        Replace the stored state with an exported configuration.

        The envelope is validated in full before anything is written.

        Args:
            config: Parsed envelope (e.g. from JSON).

        Returns:
            The imported envelope.

        Raises:
            ConfigImportError: If the envelope is missing its version or invalid.
        """
        if not isinstance(config, dict) or not config.get("version"):
            raise ConfigImportError("Invalid configuration format: missing version")

        try:
            envelope = ConfigEnvelope.model_validate(config)
            for rule in envelope.filters:
                validate_rule(rule)
        except (ValidationError, InvalidRuleError) as e:
            raise ConfigImportError(f"Invalid configuration format: {e}") from e

        self._write(
            {
                "rules": [r.model_dump(mode="json") for r in envelope.filters],
                "settings": envelope.settings.model_dump(mode="json"),
                "selected_accounts": envelope.selected_accounts.model_dump(mode="json"),
            }
        )
        return envelope


def dump_envelope(envelope: ConfigEnvelope) -> str:
    """Serialize an envelope to JSON with the exported key names."""
    return json.dumps(envelope.model_dump(mode="json", by_alias=True), indent=2)


def load_envelope_file(path: Path) -> dict[str, Any]:
    """Read an exported configuration file."""
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigImportError(f"Cannot read configuration from {path}: {e}") from e
