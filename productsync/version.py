"""
Legacy installer version encoding for ProductSync.

The installer database stores a product version as one 32-bit integer with
byte lanes ``MM mm pppp`` (major, minor, patch), most significant byte first.
Minor values that do not fit a byte are escaped by setting the minor lane to
0xFF and packing ``minor * 10 (+ patch)`` into the low 16 bits.

``decode`` is the inverse of the lane layout only. For escaped values it
yields ``major.255.<packed>``, which is what the installer itself displays.
"""

import logging
from typing import Sequence, Tuple

from productsync.errors import InvalidVersion

logger = logging.getLogger("productsync.version")

OVERFLOW_LANE = 0x00FF0000
MAX_ENCODED = 0xFFFFFFFF


def parse_version(text: str) -> Tuple[int, ...]:
    """
    Parse a dot-delimited version string into integer components.

    Args:
        text: Raw version string such as ``"2.528.3"``

    Returns:
        Tuple of non-negative integers, e.g. ``(2, 528, 3)``

    Raises:
        InvalidVersion: If the string is empty or any component is not a
            plain run of decimal digits.
    """
    if not isinstance(text, str):
        raise InvalidVersion(f"Version must be a string, got {type(text).__name__}")

    stripped = text.strip()
    if not stripped:
        raise InvalidVersion("Version string is empty")

    components = []
    for part in stripped.split("."):
        # isdigit() accepts superscripts and other non-ASCII digits
        if not part or not (part.isascii() and part.isdigit()):
            raise InvalidVersion(f"Invalid version component {part!r} in {text!r}")
        components.append(int(part))
    return tuple(components)


def _check_components(components: Sequence[int]) -> None:
    if len(components) == 0:
        raise InvalidVersion("Version has no components")
    for value in components:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidVersion(f"Version component {value!r} is not an integer")
        if value < 0:
            raise InvalidVersion(f"Version component {value} is negative")


def encode(components: Sequence[int]) -> int:
    """
    Pack version components into the legacy 32-bit installer integer.

    Only the first three components are used. A two-component version with
    a minor that fits in a byte encodes the major lane alone; the minor is
    dropped. This matches the historical installer format.

    Args:
        components: One or more non-negative integers

    Returns:
        Unsigned 32-bit encoded version

    Raises:
        InvalidVersion: If the sequence is empty or holds a negative or
            non-integer component.
    """
    _check_components(components)

    major = components[0]
    minor = components[1] if len(components) > 1 else 0
    result = (major & 0xFF) << 24

    if len(components) <= 2:
        if minor > 255:
            result |= OVERFLOW_LANE | ((minor * 10) & 0xFFFF)
    else:
        patch = components[2]
        if minor > 255:
            result |= OVERFLOW_LANE | (((minor * 10) + patch) & 0xFFFF)
        else:
            result |= ((minor & 0xFF) << 16) | (patch & 0xFFFF)

    logger.debug(f"Encoded version {list(components)} as 0x{result:08X}")
    return result


def encode_string(text: str) -> int:
    """Parse *text* and encode it in one step."""
    return encode(parse_version(text))


def _check_encoded(encoded: int) -> None:
    if isinstance(encoded, bool) or not isinstance(encoded, int):
        raise InvalidVersion(f"Encoded version {encoded!r} is not an integer")
    if encoded < 0 or encoded > MAX_ENCODED:
        raise InvalidVersion(f"Encoded version {encoded} is not a 32-bit value")


def major_of(encoded: int) -> int:
    """Return the major byte lane of an encoded version."""
    _check_encoded(encoded)
    return (encoded >> 24) & 0xFF


def minor_of(encoded: int) -> int:
    """Return the minor byte lane of an encoded version."""
    _check_encoded(encoded)
    return (encoded >> 16) & 0xFF


def patch_of(encoded: int) -> int:
    """Return the low 16-bit patch lane of an encoded version."""
    _check_encoded(encoded)
    return encoded & 0xFFFF


def decode(encoded: int) -> str:
    """
    Render an encoded version as the ``major.minor.patch`` display string.

    Args:
        encoded: Unsigned 32-bit encoded version

    Returns:
        Display version read straight off the byte lanes
    """
    return f"{major_of(encoded)}.{minor_of(encoded)}.{patch_of(encoded)}"
