"""
Validation utilities for MCP tool arguments.

Provides standardized validation functions that return (value, error) tuples.
"""

import os
import re
from typing import List, Optional

# Maximum length of any free-text argument; override with CONTACTS_MCP_MAX_LENGTH
MAX_STRING_LENGTH = int(os.getenv("CONTACTS_MCP_MAX_LENGTH", "500"))

BIRTHDAY_PATTERN = re.compile(r'^(?:\d{4}|-)-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])$')


def validate_non_empty_string(
    value,
    name: str,
    max_len: int = MAX_STRING_LENGTH,
    strip: bool = True
) -> tuple[str | None, str | None]:
    """
    Validate that a value is a non-empty string.

    Args:
        value: Value to validate
        name: Parameter name for error messages
        max_len: Maximum allowed length
        strip: Return the value trimmed. Exact-name arguments pass
            strip=False so they reach Contacts.app as typed; whitespace-only
            values are rejected either way.

    Returns:
        Tuple of (validated_value, error_message). If valid, error_message is None.
    """
    if value is None:
        return None, f"Missing required parameter: {name}"

    if not isinstance(value, str):
        return None, f"Invalid {name}: must be a string, got {type(value).__name__}"

    if not value.strip():
        return None, f"Invalid {name}: cannot be empty"

    if strip:
        value = value.strip()

    if len(value) > max_len:
        return None, f"Invalid {name}: must be at most {max_len} characters"

    return value, None


def validate_optional_string(
    value,
    name: str,
    max_len: int = MAX_STRING_LENGTH
) -> tuple[str | None, str | None]:
    """
    Validate an optional string. None passes through; empty strings are allowed.

    Returns:
        Tuple of (validated_value, error_message). If valid, error_message is None.
    """
    if value is None:
        return None, None

    if not isinstance(value, str):
        return None, f"Invalid {name}: must be a string, got {type(value).__name__}"

    if len(value) > max_len:
        return None, f"Invalid {name}: must be at most {max_len} characters"

    return value, None


def validate_string_list(value, name: str) -> tuple[List[str] | None, str | None]:
    """
    Validate an optional list of strings.

    Returns:
        Tuple of (validated_value, error_message). If valid, error_message is None.
    """
    if value is None:
        return None, None

    if not isinstance(value, list):
        return None, f"Invalid {name}: must be a list of strings, got {type(value).__name__}"

    for item in value:
        if not isinstance(item, str):
            return None, f"Invalid {name}: all items must be strings, got {type(item).__name__}"

    return value, None


def validate_birthday(value, name: str = "birthday") -> tuple[str | None, str | None]:
    """
    Validate an optional birthday in YYYY-MM-DD (or --MM-DD) form.

    An empty string is accepted and clears the birthday.

    Returns:
        Tuple of (validated_value, error_message). If valid, error_message is None.
    """
    value, error = validate_optional_string(value, name)
    if error or not value:
        return value, error

    if not BIRTHDAY_PATTERN.match(value):
        return None, f"Invalid {name}: expected YYYY-MM-DD, got '{value}'"

    return value, None


def validate_contact_fields(
    arguments: dict,
    string_fields: List[str],
    list_fields: List[str]
) -> tuple[dict | None, str | None]:
    """
    Validate the optional contact fields of a create/update call.

    Returns:
        Tuple of (fields, error_message). fields only holds keys that were
        supplied (not None).
    """
    fields = {}

    for key in string_fields:
        if key == "birthday":
            value, error = validate_birthday(arguments.get(key), key)
        else:
            value, error = validate_optional_string(arguments.get(key), key)
        if error:
            return None, error
        if value is not None:
            fields[key] = value

    for key in list_fields:
        value, error = validate_string_list(arguments.get(key), key)
        if error:
            return None, error
        if value is not None:
            fields[key] = value

    return fields, None
