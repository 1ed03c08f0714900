"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers. They arrive from gateway events as
ints, from slash-command options as strings and from SQLite as ints again;
these wrappers give the voting code one consistent representation and keep
a user id from being passed where a message id is expected.
"""

from __future__ import annotations

from typing import Union


class _Snowflake:
    """
    Shared behaviour for the snowflake wrappers.

    The value is stored as a string for JSON parity, compares equal to the
    same id given as ``int`` or ``str`` and hashes like its string form.
    Instances of two different wrapper classes never compare equal.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "_Snowflake"]) -> None:
        if isinstance(value, _Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            # Validate that it's a valid integer string
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls and SQLite columns."""
        return int(self._value)

    def __int__(self) -> int:
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(_Snowflake):
    """
    Discord user snowflake.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> UserID("123456789012345678") == 123456789012345678
        True
    """

    __slots__ = ()

    def mention(self) -> str:
        """Return the ``<@id>`` mention markup for this user."""
        return f"<@{self._value}>"


class GuildID(_Snowflake):
    """Discord guild (server) snowflake."""

    __slots__ = ()


class ChannelID(_Snowflake):
    """Discord channel snowflake."""

    __slots__ = ()


class MessageID(_Snowflake):
    """Discord message snowflake."""

    __slots__ = ()
