"""Smart Filter expressions: a compact text form of a rule's conditions.

Syntax::

    FIELD operator value [AND|OR FIELD operator value ...]

    FROM contains john@example.com AND SUBJECT contains invoice
    FROM contains {john AND co} OR SUBJECT contains {monthly report}

Values wrapped in braces may contain whitespace and the connector words.
This module is the only parser; the editor preview and rule import both use it.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from filter_move_mail.rules.conditions import Condition, ConditionField, ConditionOperator
from filter_move_mail.rules.engine import MatchMode

CONNECTOR_PATTERNS = (
    ("OR", re.compile(r"\s+OR\s+", re.IGNORECASE)),
    ("AND", re.compile(r"\s+AND\s+", re.IGNORECASE)),
)

_FIELDS = "|".join(f.name for f in ConditionField)
_OPERATORS = "|".join(sorted((o.value for o in ConditionOperator), key=len, reverse=True))

CLAUSE_PATTERN = re.compile(
    rf"^({_FIELDS})\s+({_OPERATORS})(?:\s+(?:\{{([^}}]*)\}}|(.*)))?$",
    re.IGNORECASE | re.DOTALL,
)

RESERVED_WORDS_PATTERN = re.compile(
    r"\b(AND|OR|"
    + "|".join(o.value for o in ConditionOperator)
    + "|"
    + _FIELDS
    + r")\b",
    re.IGNORECASE,
)

ANY_BOOK = "*"


@dataclass
class SmartFilterResult:
    """Parsed expression: match mode plus conditions."""

    match_mode: MatchMode
    conditions: list[Condition]


def _match_connector(expression: str, pos: int) -> tuple[str, int] | None:
    for name, pattern in CONNECTOR_PATTERNS:
        m = pattern.match(expression, pos)
        if m:
            return name, m.end()
    return None


def split_by_connectors(expression: str) -> tuple[list[str], list[str]]:
    """
    Split an expression on top-level AND/OR connectors.

    Connectors inside ``{...}`` are part of the value and never split.

    Returns:
        (clauses, connectors) with connectors upper-cased in order of appearance.
    """
    parts: list[str] = []
    connectors: list[str] = []
    current = ""
    depth = 0
    i = 0

    while i < len(expression):
        ch = expression[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            # Unbalanced closing braces are ignored
            depth = max(depth - 1, 0)
        elif depth == 0:
            connector = _match_connector(expression, i)
            if connector:
                name, end = connector
                parts.append(current.strip())
                connectors.append(name)
                current = ""
                i = end
                continue
        current += ch
        i += 1

    if current.strip():
        parts.append(current.strip())
    return parts, connectors


def match_mode_for(connectors: Iterable[str]) -> MatchMode:
    """
    Derive the match mode from the connectors used.

    Only OR connectors give ANY. Anything else, including a mix of AND and OR,
    gives ALL; mixed expressions lose their grouping.
    """
    used = set(connectors)
    if "OR" in used and "AND" not in used:
        return MatchMode.ANY
    return MatchMode.ALL


def parse_clause(clause: str) -> Condition | None:
    """Parse one ``FIELD operator value`` clause, or return None."""
    m = CLAUSE_PATTERN.match(clause)
    if not m:
        return None

    field = ConditionField[m.group(1).upper()]
    operator = ConditionOperator(m.group(2).lower())
    if m.group(3) is not None:
        value = m.group(3)
    else:
        value = (m.group(4) or "").strip()

    return Condition(field=field, operator=operator, value=value, address_book_id=None)


def parse_smart_filter(expression: str | None) -> SmartFilterResult | None:
    """
    Parse a Smart Filter expression.

    Clauses that do not parse are dropped.

    Args:
        expression: The expression text.

    Returns:
        SmartFilterResult, or None if the expression is empty or no clause parsed.
    """
    if not expression or not expression.strip():
        return None

    parts, connectors = split_by_connectors(expression)
    conditions = [c for c in (parse_clause(p) for p in parts if p) if c is not None]
    if not conditions:
        return None

    return SmartFilterResult(match_mode=match_mode_for(connectors), conditions=conditions)


def needs_braces(value: str) -> bool:
    """Whether a value must be wrapped in braces to parse back unchanged."""
    if not value:
        return False
    return bool(re.search(r"\s", value)) or bool(RESERVED_WORDS_PATTERN.search(value))


def format_value(value: str) -> str:
    return f"{{{value}}}" if needs_braces(value) else value


def to_smart_filter(
    conditions: Iterable[Condition],
    match_mode: MatchMode,
    book_names: Mapping[str, str] | None = None,
) -> str:
    """
    Render conditions as a Smart Filter expression.

    Address book operators show the book's name (``*`` for any book) in place
    of a value. Parsing the text back does not restore the book reference.

    Args:
        conditions: Conditions to render; inactive ones are skipped.
        match_mode: ANY joins with OR, ALL with AND.
        book_names: Address book id to display name.

    Returns:
        The expression text.
    """
    book_names = book_names or {}
    connector = " OR " if match_mode is MatchMode.ANY else " AND "

    clauses = []
    for condition in conditions:
        if not condition.is_active:
            continue
        field = condition.field.name
        op = condition.operator.value

        if condition.operator.uses_address_book:
            label = ANY_BOOK
            if condition.address_book_id:
                label = book_names.get(condition.address_book_id, condition.address_book_id)
            clauses.append(f"{field} {op} {format_value(label)}")
            continue

        clauses.append(f"{field} {op} {format_value(condition.value)}")

    return connector.join(clauses)
