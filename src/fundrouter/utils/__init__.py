"""Utility modules for the fund router."""

from fundrouter.utils.hexcodec import InvalidInputError, decode_hex, encode_hex, validate_hex
from fundrouter.utils.locks import DepositLock, LockTimeoutError, get_deposit_lock

__all__ = [
    "DepositLock",
    "LockTimeoutError",
    "get_deposit_lock",
    "InvalidInputError",
    "decode_hex",
    "encode_hex",
    "validate_hex",
]
