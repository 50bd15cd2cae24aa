"""Tests for Smart Filter expression parsing and rendering."""

import pytest

from filter_move_mail.rules.conditions import Condition, ConditionField, ConditionOperator
from filter_move_mail.rules.engine import MatchMode
from filter_move_mail.rules.smart_filter import (
    needs_braces,
    parse_smart_filter,
    split_by_connectors,
    to_smart_filter,
)


def as_tuples(conditions: list[Condition]) -> list[tuple[str, str, str]]:
    return [(c.field.value, c.operator.value, c.value) for c in conditions]


class TestSplitByConnectors:
    """Tests for top-level clause splitting."""

    def test_split_and_or(self) -> None:
        parts, connectors = split_by_connectors("FROM contains a AND TO contains b or CC is c")
        assert parts == ["FROM contains a", "TO contains b", "CC is c"]
        assert connectors == ["AND", "OR"]

    def test_braces_protect_connectors(self) -> None:
        parts, connectors = split_by_connectors("SUBJECT contains {this AND that} OR BODY is x")
        assert parts == ["SUBJECT contains {this AND that}", "BODY is x"]
        assert connectors == ["OR"]

    def test_stray_closing_brace_keeps_splitting(self) -> None:
        parts, connectors = split_by_connectors("SUBJECT contains a}b AND FROM contains x")
        assert parts == ["SUBJECT contains a}b", "FROM contains x"]
        assert connectors == ["AND"]

    def test_connector_needs_surrounding_whitespace(self) -> None:
        parts, connectors = split_by_connectors("SUBJECT contains BRAND")
        assert parts == ["SUBJECT contains BRAND"]
        assert connectors == []


class TestParseSmartFilter:
    """Tests for parsing expressions into conditions."""

    def test_braced_value_with_keyword(self) -> None:
        result = parse_smart_filter("FROM contains {john AND co} OR SUBJECT contains invoice")
        assert result is not None
        assert result.match_mode is MatchMode.ANY
        assert as_tuples(result.conditions) == [
            ("from", "contains", "john AND co"),
            ("subject", "contains", "invoice"),
        ]

    def test_all_and_is_all(self) -> None:
        result = parse_smart_filter("FROM is a@x.com AND SUBJECT contains report")
        assert result is not None
        assert result.match_mode is MatchMode.ALL

    def test_mixed_connectors_collapse_to_all(self) -> None:
        result = parse_smart_filter(
            "FROM contains x AND TO contains y OR SUBJECT contains z"
        )
        assert result is not None
        assert result.match_mode is MatchMode.ALL
        assert len(result.conditions) == 3

    def test_single_clause_is_all(self) -> None:
        result = parse_smart_filter("subject CONTAINS Invoice")
        assert result is not None
        assert result.match_mode is MatchMode.ALL
        assert as_tuples(result.conditions) == [("subject", "contains", "Invoice")]

    def test_free_value_keeps_inner_spaces(self) -> None:
        result = parse_smart_filter("SUBJECT is monthly   report ")
        assert result is not None
        assert result.conditions[0].value == "monthly   report"

    def test_address_book_clause(self) -> None:
        result = parse_smart_filter("FROM not_in_addressbook * AND TO in_addressbook")
        assert result is not None
        assert result.conditions[0].operator is ConditionOperator.NOT_IN_ADDRESSBOOK
        assert result.conditions[0].address_book_id is None
        assert result.conditions[1].value == ""

    def test_invalid_clauses_dropped(self) -> None:
        result = parse_smart_filter("FROM contains a OR REPLYTO contains b OR nonsense")
        assert result is not None
        assert as_tuples(result.conditions) == [("from", "contains", "a")]

    @pytest.mark.parametrize("expression", ["", "   ", None, "hello world", "FROM likes x"])
    def test_nothing_parsed(self, expression: str | None) -> None:
        assert parse_smart_filter(expression) is None


class TestToSmartFilter:
    """Tests for rendering conditions as text."""

    def test_round_trip(self) -> None:
        original = parse_smart_filter("FROM contains {john AND co} OR SUBJECT contains invoice")
        assert original is not None

        text = to_smart_filter(original.conditions, original.match_mode)
        assert text == "FROM contains {john AND co} OR SUBJECT contains invoice"

        reparsed = parse_smart_filter(text)
        assert reparsed is not None
        assert reparsed.match_mode is original.match_mode
        assert as_tuples(reparsed.conditions) == as_tuples(original.conditions)

    def test_values_with_keywords_braced(self) -> None:
        conditions = [
            Condition(field=ConditionField.SUBJECT, operator="contains", value="is"),
            Condition(field=ConditionField.BODY, operator="contains", value="or"),
            Condition(field=ConditionField.FROM, operator="is", value="a@x.com"),
        ]
        text = to_smart_filter(conditions, MatchMode.ALL)
        assert text == "SUBJECT contains {is} AND BODY contains {or} AND FROM is a@x.com"

        reparsed = parse_smart_filter(text)
        assert reparsed is not None
        assert as_tuples(reparsed.conditions) == as_tuples(conditions)

    def test_address_book_names(self) -> None:
        conditions = [
            Condition(field="from", operator="in_addressbook", address_book_id="b1"),
            Condition(field="to", operator="not_in_addressbook"),
        ]
        text = to_smart_filter(conditions, MatchMode.ANY, {"b1": "Friends"})
        assert text == "FROM in_addressbook Friends OR TO not_in_addressbook *"

        reparsed = parse_smart_filter(text)
        assert reparsed is not None
        assert [c.address_book_id for c in reparsed.conditions] == [None, None]

    def test_inactive_conditions_skipped(self) -> None:
        conditions = [
            Condition(field="from", operator="contains", value=""),
            Condition(field="subject", operator="contains", value="x"),
        ]
        assert to_smart_filter(conditions, MatchMode.ALL) == "SUBJECT contains x"

    def test_needs_braces(self) -> None:
        assert needs_braces("two words")
        assert needs_braces("SUBJECT")
        assert needs_braces("not_contains")
        assert not needs_braces("invoice")
        assert not needs_braces("")

    def test_book_name_with_keyword_round_trip(self) -> None:
        """Book names with spaces or connector words are braced."""
        conditions = [
            Condition(field="from", operator="in_addressbook", address_book_id="b1"),
            Condition(field="subject", operator="contains", value="x"),
        ]
        text = to_smart_filter(conditions, MatchMode.ANY, {"b1": "Friends and Family"})
        assert text == "FROM in_addressbook {Friends and Family} OR SUBJECT contains x"

        reparsed = parse_smart_filter(text)
        assert reparsed is not None
        assert reparsed.match_mode is MatchMode.ANY
        assert [c.operator for c in reparsed.conditions] == [
            ConditionOperator.IN_ADDRESSBOOK,
            ConditionOperator.CONTAINS,
        ]

    def test_stray_closing_brace_round_trip(self) -> None:
        conditions = [
            Condition(field="subject", operator="contains", value="a}b"),
            Condition(field="from", operator="contains", value="x"),
        ]
        reparsed = parse_smart_filter(to_smart_filter(conditions, MatchMode.ALL))
        assert reparsed is not None
        assert as_tuples(reparsed.conditions) == as_tuples(conditions)
