"""Hex text helpers for pasted printer dumps."""

import re

# Separators that may appear between hex bytes
DELIMITERS = re.compile(r"[\s,;:_\-|./\\]")

HEX_DIGITS = "0123456789abcdefABCDEF"


def _error(text: str, index: int, message: str) -> ValueError:
    # Small caret context for easier debugging
    start = max(0, index - 10)
    snippet = text[start:index + 10]
    caret = " " * (index - start) + "^"
    return ValueError(f"{message} at index {index}\n{snippet}\n{caret}")


def hex_to_bytes(text: str) -> bytes:
    """Parse a hexadecimal string into bytes.

    Accepts undelimited hex ("AABBCC"), common delimiters
    ("AA BB-CC_DD|EE,FF:00"), 0x-prefixed tokens ("0xAA 0xbb") and any
    casing. An odd trailing nibble is padded on the right ("ABC" gives
    AB C0).

    Raises:
        TypeError: If text is not a string
        ValueError: On any other character, with its position
    """
    if not isinstance(text, str):
        raise TypeError("hex_to_bytes: input must be a string")

    result = bytearray()
    high = None
    index = 0
    while index < len(text):
        char = text[index]

        if char in HEX_DIGITS:
            # 0x / 0X token prefix, only when a hex digit follows
            if (
                char == "0"
                and high is None
                and text[index + 1:index + 2] in ("x", "X")
                and text[index + 2:index + 3] != ""
                and text[index + 2] in HEX_DIGITS
            ):
                index += 2
                continue
            nibble = int(char, 16)
            if high is None:
                high = nibble
            else:
                result.append(high << 4 | nibble)
                high = None
        elif not DELIMITERS.fullmatch(char):
            raise _error(text, index, f"Invalid character {char!r} (0x{ord(char):x}) in hex string")
        index += 1

    if high is not None:
        result.append(high << 4)
    return bytes(result)


def to_hex(data: bytes, separator: str = " ") -> str:
    """Format bytes as lowercase two-digit hex."""
    return separator.join(f"{b:02x}" for b in data)
