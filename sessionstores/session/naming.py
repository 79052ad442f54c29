"""
Destination name validation.

Table, collection and key-prefix names end up inside constructed queries,
so they are checked once when an adapter is configured.
"""

import re

from sessionstores.errors import ConfigurationError

_NAMESPACE_RE = re.compile(r"[A-Za-z0-9_-]+")
_SQL_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")


def is_valid_namespace(name: str) -> bool:
    """Non-empty and only ASCII letters, digits, hyphen and underscore."""
    return bool(name) and _NAMESPACE_RE.fullmatch(name) is not None


def is_valid_sql_identifier(name: str) -> bool:
    """Starts with a letter or underscore; then letters, digits, underscore or dollar."""
    return bool(name) and _SQL_IDENTIFIER_RE.fullmatch(name) is not None


def validate_namespace(name: str) -> str:
    """
    Return name unchanged if it is a safe namespace.

    Raises:
        ConfigurationError: If the name is empty or has other characters.
    """
    if not isinstance(name, str) or not is_valid_namespace(name):
        raise ConfigurationError(
            f"Invalid namespace {name!r}. Names must be alphanumeric and may "
            "contain hyphens or underscores.",
            invalid_fields={"namespace": str(name)},
        )
    return name


def validate_sql_identifier(name: str) -> str:
    """
    Return name unchanged if it is a safe SQL table name.

    Raises:
        ConfigurationError: If the name breaks the SQL identifier rule.
    """
    if not isinstance(name, str) or not is_valid_sql_identifier(name):
        raise ConfigurationError(
            f"Invalid table name {name!r}. Table names must start with a letter "
            "or underscore and contain only letters, digits, underscores or dollar signs.",
            invalid_fields={"namespace": str(name)},
        )
    return name
