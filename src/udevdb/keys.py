"""
Lookup key construction.

Every string that ends up in a key is checked against its capacity before
anything is joined; oversized input is rejected, never truncated.
"""

from typing import Tuple

from .errors import InvalidArgument

# Capacities include room for the terminating NUL of the stored layout,
# so a string must be strictly shorter than its capacity.
NAME_SIZE = 100
PATH_SIZE = 256
BUS_SIZE = 30
ID_SIZE = 50

DELIMITER = "#"


def check_bounded(value: str, size: int, field: str) -> bytes:
    """
    Validate a bounded string and return its UTF-8 encoding.

    Raises:
        InvalidArgument: if value is missing, not a string, contains NUL or
            does not fit in size bytes including the terminator
    """
    if value is None:
        raise InvalidArgument(f"{field} is required")
    if not isinstance(value, str):
        raise InvalidArgument(f"{field} must be a string, got {type(value).__name__}")
    encoded = value.encode("utf-8")
    if b"\0" in encoded:
        raise InvalidArgument(f"{field} must not contain NUL bytes")
    if len(encoded) >= size:
        raise InvalidArgument(f"{field} is {len(encoded)} bytes, must be shorter than {size}")
    return encoded


def single_key(value: str, size: int, field: str = "key") -> bytes:
    """Build a single-part key. Empty keys are rejected."""
    encoded = check_bounded(value, size, field)
    if not encoded:
        raise InvalidArgument(f"{field} must not be empty")
    return encoded


def compose_key(
    first: str,
    first_size: int,
    second: str,
    second_size: int,
    first_field: str = "first",
    second_field: str = "second",
) -> bytes:
    """
    Join two bounded strings with the key delimiter.

    The first part may not contain the delimiter, so a key always splits
    back into the parts it was built from.
    """
    head = check_bounded(first, first_size, first_field)
    tail = check_bounded(second, second_size, second_field)
    if DELIMITER.encode() in head:
        raise InvalidArgument(f"{first_field} must not contain {DELIMITER!r}")
    return head + DELIMITER.encode() + tail


def split_key(key: bytes) -> Tuple[str, str]:
    """Split a two-part key at its first delimiter."""
    head, sep, tail = key.decode("utf-8").partition(DELIMITER)
    if not sep:
        raise InvalidArgument(f"{key!r} is not a composite key")
    return head, tail


def name_key(name: str) -> bytes:
    return single_key(name, NAME_SIZE, "name")


def sysfs_key(path: str) -> bytes:
    return single_key(path, PATH_SIZE, "sysfs path")


def bus_key(bus_name: str, bus_id: str) -> bytes:
    return compose_key(bus_name, BUS_SIZE, bus_id, ID_SIZE, "bus name", "bus id")


def class_key(class_name: str, class_dev_name: str) -> bytes:
    return compose_key(
        class_name, NAME_SIZE, class_dev_name, NAME_SIZE, "class name", "class device name"
    )
