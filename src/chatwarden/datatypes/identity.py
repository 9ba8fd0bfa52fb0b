"""
Canonical phone-number identities.

Transports identify senders with serialized ids such as ``"6591234567@c.us"``.
The moderation engine keys authorization checks and strike counts on the
digits of that id, with local numbers expanded to include the country code.
"""

from __future__ import annotations

import re
from typing import Iterable, Union

NON_DIGITS = re.compile(r"\D", re.ASCII)

# Length of a local number that was stored without its country code
LOCAL_NUMBER_LENGTH = 8
# Shortest identity allowed to match a longer one by suffix
MIN_SUFFIX_MATCH = LOCAL_NUMBER_LENGTH
DEFAULT_COUNTRY_CODE = "65"


def digits_only(value: str | None) -> str:
    """Strip every non-digit character from ``value``."""
    if not value:
        return ""
    return NON_DIGITS.sub("", value)


class Identity:
    """
    Type-safe wrapper for a digits-only phone identity.

    Example:
        >>> Identity("6591234567")
        Identity('6591234567')
        >>> Identity("91234567").matches(Identity("6591234567"))
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, "Identity"]) -> None:
        """
        Args:
            value: Digits string or another Identity.

        Raises:
            ValueError: If the value is empty or contains non-digit characters.
        """
        if isinstance(value, Identity):
            self._value = value._value
        elif isinstance(value, str) and value.isascii() and value.isdigit():
            self._value = value
        else:
            raise ValueError(f"Cannot create Identity from {value!r}")

    def matches(self, other: "Identity") -> bool:
        """Return True when the identities are equal or one is a suffix of the other.

        The suffix rule absorbs country-code prefix variance between configured
        admin numbers and transport sender ids. It only applies when the shorter
        identity has at least ``MIN_SUFFIX_MATCH`` digits, so a stray id like
        ``"5"`` never matches every number ending in 5.
        """
        a, b = self._value, other._value
        if a == b:
            return True
        shorter, longer = sorted((a, b), key=len)
        return len(shorter) >= MIN_SUFFIX_MATCH and longer.endswith(shorter)

    def display(self) -> str:
        """Render the identity for humans, with a leading ``+`` for full numbers."""
        return f"+{self._value}" if len(self._value) > 6 else self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Identity({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Identity):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


def resolve_identity(raw_sender_id: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> Identity | None:
    """Map a transport sender id to its canonical identity.

    Non-digits are stripped; an 8-digit result is treated as a local number
    and prefixed with ``country_code``. Returns None when no digits remain.
    """
    digits = digits_only(raw_sender_id)
    if not digits:
        return None
    if len(digits) == LOCAL_NUMBER_LENGTH:
        digits = digits_only(country_code) + digits
    return Identity(digits)


def is_authorized(identity: Identity | None, principals: Iterable[Identity]) -> bool:
    """Return True if ``identity`` matches any authorized principal.

    Matching is exact, or by suffix when the shorter side is a full local
    number of at least ``MIN_SUFFIX_MATCH`` digits.
    """
    if identity is None:
        return False
    return any(identity.matches(principal) for principal in principals)
