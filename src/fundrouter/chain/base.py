"""Base interface for the chain client.

Every operation is a read or a submit-and-confirm unit:
1. Read chain state (balance, deployed code, predicted addresses)
2. Simulate the call where a return value is needed
3. Sign with the caller-supplied signer and broadcast
4. Wait for the receipt and check its status
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from fundrouter.chain.signer import Signer

logger = logging.getLogger(__name__)

# Returned by transfer_out when the proxy holds nothing
ZERO_TX_HASH = b"\x00" * 32


class ChainError(Exception):
    """Base exception for chain client failures."""

    pass


class ChainUnavailableError(ChainError):
    """Raised on transport or JSON-RPC failure, or when a receipt never arrives."""

    pass


class TransactionRevertedError(ChainError):
    """Raised when a transaction was mined but reverted."""

    def __init__(self, message: str, tx_hash: Optional[bytes] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ProxyNotDeployedError(ChainError):
    """Raised when a proxy address carries no code.

    A call to an empty account succeeds on chain without moving funds.
    """

    def __init__(self, address: bytes):
        super().__init__(f"no proxy code at 0x{address.hex()}")
        self.address = address


class ChainClient(ABC):
    """Abstract chain capability used by the routing engine.

    Addresses are 20 raw bytes, salts and balances 32 raw bytes.
    """

    @abstractmethod
    async def get_balance(self, address: bytes) -> bytes:
        """Get the native balance of an address.

        Returns:
            Balance as a 32-byte big-endian integer
        """
        pass

    @abstractmethod
    async def get_code(self, address: bytes) -> bytes:
        """Get the deployed bytecode at an address (empty when none)."""
        pass

    @abstractmethod
    async def predict_addresses(
        self, deployer: bytes, caller: bytes, salts: list[bytes]
    ) -> list[bytes]:
        """Predict proxy addresses for salts as if ``caller`` deployed them.

        Read-only simulation; one address per salt, in order.
        """
        pass

    @abstractmethod
    async def deploy_proxies(
        self, deployer: bytes, signer: "Signer", salts: list[bytes]
    ) -> list[bytes]:
        """Deploy proxies for the salts that have no code yet.

        Returns:
            Addresses reported by the simulated deploy call, or an empty list
            when every proxy already exists

        Raises:
            TransactionRevertedError: If the deploy transaction reverted
            ChainUnavailableError: On RPC failure
        """
        pass

    @abstractmethod
    async def transfer_out(self, signer: "Signer", proxy: bytes, treasury: bytes) -> bytes:
        """Sweep the whole native balance of ``proxy`` to ``treasury``.

        Returns:
            32-byte transaction hash, or ZERO_TX_HASH when the balance is zero

        Raises:
            ProxyNotDeployedError: If ``proxy`` has no code
            TransactionRevertedError: If the transfer reverted
            ChainUnavailableError: On RPC failure
        """
        pass

    async def health_check(self) -> bool:
        """Check if the chain is reachable."""
        return True

    async def close(self) -> None:
        """Release network resources."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
