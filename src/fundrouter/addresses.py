"""Deterministic deposit address derivation.

salt = keccak256(user); the address is whatever the deployer contract
predicts for that salt when called by the account that will deploy it.
"""

import logging

from eth_utils import keccak

from fundrouter.chain.base import ChainClient, ChainError
from fundrouter.utils.hexcodec import ADDRESS_LENGTH, require_length

logger = logging.getLogger(__name__)


def derive_salt(user: bytes) -> bytes:
    """Hash a 20-byte user identifier into a 32-byte salt.

    Raises:
        InvalidInputError: If ``user`` is not 20 bytes
    """
    user = require_length(user, ADDRESS_LENGTH, "user")
    return keccak(user)


async def derive_address(
    chain: ChainClient,
    deployer: bytes,
    caller: bytes,
    user: bytes,
) -> tuple[bytes, bytes]:
    """Compute the salt and predicted proxy address for a user.

    ``caller`` must be the address of the signer that will later deploy the
    proxy; the deployer mixes it into the CREATE2 salt.

    Returns:
        (salt, address)

    Raises:
        InvalidInputError: If any identifier is mis-sized
        ChainUnavailableError: If the prediction call fails
    """
    salt = derive_salt(user)
    deployer = require_length(deployer, ADDRESS_LENGTH, "deployer")
    caller = require_length(caller, ADDRESS_LENGTH, "caller")

    addresses = await chain.predict_addresses(deployer, caller, [salt])
    if len(addresses) != 1:
        raise ChainError(f"Expected 1 predicted address, got {len(addresses)}")

    address = addresses[0]
    logger.debug(f"Derived 0x{address.hex()} for user 0x{user.hex()}")
    return salt, address
