"""Small helpers shared across the bridge."""

import time
from typing import Any


def get_unix_time() -> int:
    """Return the current UNIX timestamp in whole seconds."""
    return int(time.time())


def display_name(user: dict[str, Any]) -> str | None:
    """Return the name a chat participant should be shown with.

    Nicknames take precedence over the registered name.

    Examples:
        >>> display_name({"nickname": "Ann", "name": "Ann Smith"})
        'Ann'
        >>> display_name({"name": "Bob"})
        'Bob'
    """
    return user.get("nickname") or user.get("name")


def full_name(first_name: str | None, last_name: str | None) -> str | None:
    """Join first and last name, tolerating a missing last name."""
    if last_name is None:
        return first_name
    return " ".join(part for part in (first_name, last_name) if part)
