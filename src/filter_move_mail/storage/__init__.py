"""Rule and settings persistence."""

from filter_move_mail.storage.store import (
    CONFIG_VERSION,
    ConfigEnvelope,
    FilterSettings,
    RuleStore,
    validate_rule,
)

__all__ = [
    "CONFIG_VERSION",
    "ConfigEnvelope",
    "FilterSettings",
    "RuleStore",
    "validate_rule",
]
