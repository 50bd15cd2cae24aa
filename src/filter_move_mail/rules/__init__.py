"""Rule engine for email sorting."""

from filter_move_mail.rules.conditions import (
    Condition,
    ConditionField,
    ConditionOperator,
    evaluate_condition,
)
from filter_move_mail.rules.engine import (
    AccountScope,
    MatchMode,
    Rule,
    RuleAction,
    RuleEngine,
    RunOptions,
    RunResult,
)
from filter_move_mail.rules.smart_filter import parse_smart_filter, to_smart_filter

__all__ = [
    "AccountScope",
    "Condition",
    "ConditionField",
    "ConditionOperator",
    "MatchMode",
    "Rule",
    "RuleAction",
    "RuleEngine",
    "RunOptions",
    "RunResult",
    "evaluate_condition",
    "parse_smart_filter",
    "to_smart_filter",
]
