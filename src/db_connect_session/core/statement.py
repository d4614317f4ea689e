"""Statement classification by leading keyword."""

from enum import Enum


class StatementKind(str, Enum):
    """What a statement does, which decides the shape of its result."""

    READ = "read"
    MUTATE = "mutate"
    SCHEMA = "schema"
    OTHER = "other"


# Matching is case-sensitive: "select ..." is OTHER.
_KEYWORD_KINDS = {
    "SELECT": StatementKind.READ,
    "INSERT": StatementKind.MUTATE,
    "UPDATE": StatementKind.MUTATE,
    "DELETE": StatementKind.MUTATE,
    "CREATE": StatementKind.SCHEMA,
}


def leading_keyword(statement: str) -> str:
    """Return the first whitespace-delimited token of ``statement``."""
    parts = statement.split(None, 1)
    return parts[0] if parts else ""


def classify(statement: str) -> StatementKind:
    """
    Classify a statement by its first token.

    Args:
        statement: Raw SQL text

    Returns:
        READ for SELECT, MUTATE for INSERT/UPDATE/DELETE, SCHEMA for CREATE,
        OTHER for anything else
    """
    return _KEYWORD_KINDS.get(leading_keyword(statement), StatementKind.OTHER)
