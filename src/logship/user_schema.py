"""User field selection: which record fields to ship, and under which name.

``parse_user_schema(text)`` reads the ``sender.user_schema`` setting:

    "ab, abc a1, d"       ship ab as ab, abc as a1, d as d
    "ab, abc a1, ..."     same aliases, plus every other remote field as-is
    ""                    ship everything, no aliasing

Grammar: comma-separated groups of whitespace-separated tokens.

- one token ``f``       →  field ``f`` shipped as ``f``
- two tokens ``f a``    →  field ``f`` shipped as ``a``
- the lone token ``...`` →  ``default_all``
- any other group is ignored (malformed groups are not an error)
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_ALL_TOKEN = "..."


@dataclass(frozen=True)
class UserSchema:
    """Aliasing of source record fields, plus the ship-everything flag."""

    default_all: bool = True
    # source field name → output alias
    fields: dict[str, str] = field(default_factory=dict)


def parse_user_schema(text: str) -> UserSchema:
    """Parse *text* into a :class:`UserSchema`.  Never raises."""
    if not text.strip():
        return UserSchema(default_all=True, fields={})

    default_all = False
    fields: dict[str, str] = {}
    for group in text.split(","):
        tokens = group.split()
        if len(tokens) == 1:
            if tokens[0] == DEFAULT_ALL_TOKEN:
                default_all = True
            else:
                fields[tokens[0]] = tokens[0]
        elif len(tokens) == 2:
            fields[tokens[0]] = tokens[1]

    return UserSchema(default_all=default_all, fields=fields)
