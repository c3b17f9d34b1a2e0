"""Identifier validation and the mutating-keyword denylist for filter predicates.

:func:`check_safe_predicate` is a token scan, not a SQL parser.  A predicate
whose string literal happens to contain one of the denied words
(``c.content LIKE '%drop%'``) is rejected too.
"""

from __future__ import annotations

import re

from knowledge_engine.utils.errors import UnsafePredicate

DENIED_KEYWORDS: frozenset[str] = frozenset(
    {"DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE", "EXEC", "EXECUTE"}
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WORD_RE = re.compile(r"[A-Za-z_]+")


def validate_identifier(name: str) -> str:
    """Return *name* unchanged if it is a safe SQL identifier.

    Raises
    ------
    ValueError
        If *name* is empty or contains anything other than letters,
        digits and underscores (must not start with a digit).
    """
    if not name or not _IDENTIFIER_RE.match(name):
        msg = f"Invalid SQL identifier: {name!r}"
        raise ValueError(msg)
    return name


def is_safe_predicate(predicate: str) -> bool:
    """Return ``False`` if any word token of *predicate* is a denied keyword."""
    return not any(token.upper() in DENIED_KEYWORDS for token in _WORD_RE.findall(predicate))


def check_safe_predicate(predicate: str) -> str:
    """Return *predicate* or raise :class:`UnsafePredicate`."""
    if not is_safe_predicate(predicate):
        raise UnsafePredicate(message=f"Filter predicate rejected: {predicate!r}")
    return predicate
