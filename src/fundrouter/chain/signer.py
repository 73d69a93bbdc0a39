"""Transaction signing capability.

The signer is passed explicitly to every chain call that submits a
transaction. Nothing in the chain layer holds a process-wide key.
"""

import logging
from abc import ABC, abstractmethod

from eth_account import Account
from eth_utils import to_canonical_address

logger = logging.getLogger(__name__)


class SigningError(Exception):
    """Exception raised when signing fails."""

    pass


class Signer(ABC):
    """Abstract signing backend.

    Implementations should never expose raw private keys.
    """

    @property
    @abstractmethod
    def address(self) -> bytes:
        """20-byte address of the signing account."""
        pass

    @abstractmethod
    async def sign_transaction(self, tx: dict) -> bytes:
        """Sign a transaction dict and return the raw signed bytes."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address=0x{self.address.hex()})"


class LocalSigner(Signer):
    """Signer holding a private key in memory (hot wallet)."""

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except Exception as e:
            raise SigningError(f"Invalid private key: {e}") from e
        self._address = to_canonical_address(self._account.address)

    @property
    def address(self) -> bytes:
        return self._address

    async def sign_transaction(self, tx: dict) -> bytes:
        try:
            signed = self._account.sign_transaction(tx)
        except Exception as e:
            logger.error(f"Local signing failed: {e}")
            raise SigningError(str(e)) from e
        return bytes(signed.raw_transaction)


class AddressOnlySigner(Signer):
    """Identity without a key, for dry-run mode and address prediction."""

    def __init__(self, address: bytes):
        self._address = address

    @property
    def address(self) -> bytes:
        return self._address

    async def sign_transaction(self, tx: dict) -> bytes:
        raise SigningError("No signing key configured")
