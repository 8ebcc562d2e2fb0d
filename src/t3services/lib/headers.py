"""Case-insensitive header lookup.

HTTP header names are case-insensitive, but response headers may arrive as
a plain mapping (recorded fixtures, proxies that lower-case everything).
``insensitive_get`` works on any mapping with string keys.

Examples:
    >>> insensitive_get({"www-authenticate": "T3Auth realm"}, "WWW-Authenticate")
    'T3Auth realm'
    >>> insensitive_get({"Other": "x"}, "WWW-Authenticate") is None
    True
"""

from collections.abc import Mapping
from typing import TypeVar

V = TypeVar("V")


def insensitive_get(headers: Mapping[str, V], name: str) -> V | None:
    """Return the value for ``name`` ignoring letter case, or None."""
    wanted = name.casefold()
    for key, value in headers.items():
        if key.casefold() == wanted:
            return value
    return None
