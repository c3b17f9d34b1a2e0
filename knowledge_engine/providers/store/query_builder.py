"""Parameter-list SQL builder.

:class:`SQLQuery` accumulates SQL fragments together with their bound
parameters and refuses any fragment whose ``?`` placeholder count does not
match the parameters supplied with it, so placeholders and values can never
drift apart as clauses are added conditionally.  A ``?`` inside a quoted
literal or identifier is text, not a placeholder, and is not counted.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from knowledge_engine.utils.sql_safety import validate_identifier


def count_placeholders(fragment: str) -> int:
    """Count ``?`` placeholders in *fragment*, skipping quoted literals and identifiers."""
    count = 0
    quote: str | None = None
    for char in fragment:
        if quote is not None:
            # A doubled quote closes and immediately reopens the literal.
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "?":
            count += 1
    return count


def validate_column(column: str) -> str:
    """Validate a possibly table-qualified column name (``c.knowledge_base_id``)."""
    for part in column.split("."):
        validate_identifier(part)
    return column


class SQLQuery:
    """An SQL statement built from fragments with paired parameters.

    Example::

        query = SQLQuery("SELECT id FROM knowledge_chunks WHERE enabled = ?", 1)
        query.append_in("knowledge_base_id", ["kb-1", "kb-2"])
        query.append("LIMIT ?", 10)
        await db.execute(query.sql, query.params)
    """

    def __init__(self, fragment: str = "", *params: Any) -> None:
        self._fragments: list[str] = []
        self._params: list[Any] = []
        if fragment:
            self.append(fragment, *params)

    def append(self, fragment: str, *params: Any) -> SQLQuery:
        """Add *fragment* and its parameters.

        Raises
        ------
        ValueError
            If the number of ``?`` placeholders in *fragment* differs from
            ``len(params)``.
        """
        placeholders = count_placeholders(fragment)
        if placeholders != len(params):
            msg = (
                f"SQL fragment has {placeholders} placeholder(s) but {len(params)} "
                f"parameter(s) were given: {fragment!r}"
            )
            raise ValueError(msg)
        self._fragments.append(fragment)
        self._params.extend(params)
        return self

    def append_in(self, column: str, values: Sequence[Any], prefix: str = "AND") -> SQLQuery:
        """Add ``<prefix> <column> IN (?, ...)``.

        An empty *values* adds nothing; callers treat an empty scope as
        "no filter".
        """
        if not values:
            return self
        validate_column(column)
        placeholders = ", ".join("?" for _ in values)
        return self.append(f"{prefix} {column} IN ({placeholders})", *values)

    @property
    def sql(self) -> str:
        return " ".join(self._fragments)

    @property
    def params(self) -> tuple[Any, ...]:
        return tuple(self._params)

    def __repr__(self) -> str:
        return f"SQLQuery({self.sql!r}, params={len(self._params)})"
