"""
Matcher Compiler - Turns a remote read Query into a SQL statement.

Predicates are built against the pg_prometheus accessor functions. Literal
values are interpolated as SQL string literals with single quotes doubled;
only the table identifier and the operators come from code or configuration.
"""

import json

from pgprom.core.domain.errors import UnsupportedMatchType
from pgprom.core.domain.samples import METRIC_NAME_LABEL, MatchType, Query
from pgprom.core.timestamps import format_timestamp

NAME_ACCESSOR = "prom_name(sample)"
LABELS_ACCESSOR = "prom_labels(sample)"
TIME_ACCESSOR = "prom_time(sample)"

SELECT_COLUMNS = "prom_time(sample), prom_name(sample), prom_value(sample), prom_labels(sample)"

_OPERATORS = {
    MatchType.EQUAL: "=",
    MatchType.NOT_EQUAL: "!=",
    MatchType.REGEX_MATCH: "~",
    MatchType.REGEX_NO_MATCH: "!~",
}


def escape_single_quotes(value: str) -> str:
    return value.replace("'", "''")


def quote_literal(value: str) -> str:
    return f"'{escape_single_quotes(value)}'"


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _operand(match_type: MatchType, value: str) -> str:
    if match_type in (MatchType.REGEX_MATCH, MatchType.REGEX_NO_MATCH):
        return quote_literal(f"^{value}$")
    return quote_literal(value)


def _operator(match_type: object, label: str) -> str:
    try:
        return _OPERATORS[match_type]
    except (KeyError, TypeError):
        raise UnsupportedMatchType(f"Unknown match type {match_type!r} for label '{label}'") from None


def build_predicates(query: Query) -> list[str]:
    """
    Compile the matchers and time range of `query` into AND-able predicates.

    All EQUAL matchers on ordinary labels collapse into one containment check
    against the labels document. Everything else becomes one predicate each.

    Raises:
        UnsupportedMatchType: if any matcher has an unknown type. No predicates
            are returned in that case.
    """
    predicates = []
    label_equal = {}

    for m in query.matchers:
        op = _operator(m.type, m.name)

        if m.name == METRIC_NAME_LABEL:
            predicates.append(f"{NAME_ACCESSOR} {op} {_operand(m.type, m.value)}")
            continue

        if m.type == MatchType.EQUAL:
            label_equal[m.name] = m.value
            continue

        predicates.append(
            f"{LABELS_ACCESSOR}->>{quote_literal(m.name)} {op} {_operand(m.type, m.value)}"
        )

    if label_equal:
        labels_json = json.dumps(label_equal, sort_keys=True)
        predicates.append(f"{LABELS_ACCESSOR} @> {quote_literal(labels_json)}")

    predicates.append(f"{TIME_ACCESSOR} >= {quote_literal(format_timestamp(query.start_timestamp_ms))}")
    predicates.append(f"{TIME_ACCESSOR} <= {quote_literal(format_timestamp(query.end_timestamp_ms))}")
    return predicates


def build_command(query: Query, table: str) -> str:
    """Build the SELECT statement for one query against `table`."""
    predicates = build_predicates(query)
    return f"SELECT {SELECT_COLUMNS} FROM {quote_ident(table)} WHERE {' AND '.join(predicates)}"
