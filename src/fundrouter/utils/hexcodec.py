"""Fixed-width byte values and their 0x-prefixed hex form."""

from typing import Optional

ADDRESS_LENGTH = 20
SALT_LENGTH = 32
WORD_LENGTH = 32


class InvalidInputError(ValueError):
    """Raised for malformed or mis-sized byte input."""

    pass


def decode_hex(value: str) -> bytes:
    """Decode a hex string, with or without 0x prefix."""
    stripped = value[2:] if value[:2] in ("0x", "0X") else value
    try:
        return bytes.fromhex(stripped)
    except ValueError as e:
        raise InvalidInputError(f"invalid hex: {e}") from e


def encode_hex(value: Optional[bytes]) -> Optional[str]:
    """Encode bytes as a lowercase 0x-prefixed hex string."""
    if value is None:
        return None
    return "0x" + value.hex()


def validate_hex(value: str, length: int, name: str) -> bytes:
    """Decode ``value`` and require exactly ``length`` bytes."""
    try:
        raw = decode_hex(value)
    except InvalidInputError as e:
        raise InvalidInputError(f"bad {name} hex: {e}") from e
    return require_length(raw, length, name)


def require_length(value: bytes, length: int, name: str) -> bytes:
    """Check that a raw byte value has the expected width."""
    if not isinstance(value, (bytes, bytearray)) or len(value) != length:
        raise InvalidInputError(f"{name} must be {length} bytes")
    return bytes(value)


def int_to_word(value: int) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    return value.to_bytes(WORD_LENGTH, "big")


def word_to_int(value: bytes) -> int:
    """Decode a big-endian word."""
    return int.from_bytes(value, "big")
