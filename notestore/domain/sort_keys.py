"""
Sort-Key Engine.

Sibling order is stored as fractional index keys generated by the
``fractional-indexing`` package over the base-62 alphabet ``0-9A-Za-z``.
This module adds the store's own rules on top: keys compare by byte value,
never by locale collation, and every generator failure surfaces as
InvalidSortKeyError.

    >>> key_between(None, None)
    'a0'
    >>> key_between("a0", "a1")
    'a0V'
"""

from collections.abc import Iterable

from fractional_indexing import (
    BASE_62_DIGITS,
    FIError,
    generate_key_between,
    generate_n_keys_between,
    validate_order_key,
)

FIRST_KEY = "a" + BASE_62_DIGITS[0]

_ALPHABET = frozenset(BASE_62_DIGITS)


class InvalidSortKeyError(ValueError):
    """Raised for malformed keys or inverted bounds."""


def compare(a: str, b: str) -> int:
    """Byte-wise comparison: -1, 0 or 1."""
    ab, bb = a.encode("ascii"), b.encode("ascii")
    return (ab > bb) - (ab < bb)


def sort_key(key: str) -> bytes:
    """Key function for ``sorted`` consistent with ``compare``."""
    return key.encode("ascii")


def sorted_keys(keys: Iterable[str]) -> list[str]:
    return sorted(keys, key=sort_key)


def validate_key(key: str) -> None:
    """
    Check that ``key`` is a well-formed order key.

    Raises:
        InvalidSortKeyError: for an empty key, foreign characters, a bad
            integer part, a trailing zero or the reserved smallest key
    """
    # the generator indexes into the alphabet, so screen these first
    if not isinstance(key, str) or not key:
        raise InvalidSortKeyError(f"invalid order key: {key!r}")
    if not _ALPHABET.issuperset(key):
        raise InvalidSortKeyError(f"invalid characters in order key: {key!r}")
    try:
        validate_order_key(key)
    except FIError as e:
        raise InvalidSortKeyError(str(e)) from e


def is_valid_key(key: str) -> bool:
    try:
        validate_key(key)
    except InvalidSortKeyError:
        return False
    return True


def _check_bounds(lower: str | None, upper: str | None) -> None:
    for bound in (lower, upper):
        if bound is not None:
            validate_key(bound)
    if lower is not None and upper is not None and compare(lower, upper) >= 0:
        raise InvalidSortKeyError(f"{lower!r} >= {upper!r}")


def key_between(lower: str | None, upper: str | None) -> str:
    """
    Generate a key strictly between ``lower`` and ``upper``.

    ``None`` leaves that side open. With both open the first key ``a0`` is
    returned.

    Raises:
        InvalidSortKeyError: if a bound is malformed or ``lower >= upper``
    """
    _check_bounds(lower, upper)
    try:
        return generate_key_between(lower, upper)
    except FIError as e:
        raise InvalidSortKeyError(str(e)) from e


def keys_between(lower: str | None, upper: str | None, n: int) -> list[str]:
    """``n`` ascending keys strictly between ``lower`` and ``upper``."""
    if n < 0:
        raise ValueError("n must be non-negative")
    _check_bounds(lower, upper)
    try:
        return generate_n_keys_between(lower, upper, n)
    except FIError as e:
        raise InvalidSortKeyError(str(e)) from e
