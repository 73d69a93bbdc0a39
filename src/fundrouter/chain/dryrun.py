"""Dry-run chain for simulated deployments and sweeps (no real transactions).

Keeps balances and deployed code in memory and computes proxy addresses
the way a CREATE2 deployer that mixes the caller into the salt would.
"""

import asyncio
import itertools
import logging
from typing import Optional

from eth_utils import keccak

from fundrouter.chain.base import (
    ZERO_TX_HASH,
    ChainClient,
    ChainUnavailableError,
    ProxyNotDeployedError,
    TransactionRevertedError,
)
from fundrouter.chain.signer import Signer
from fundrouter.utils.hexcodec import int_to_word

logger = logging.getLogger(__name__)

# Stand-in for keccak256(proxy creation code)
PROXY_INIT_CODE_HASH = keccak(b"fund-router-proxy")
PROXY_CODE = b"\x36\x3d\x3d\x37"


def compute_proxy_address(deployer: bytes, caller: bytes, salt: bytes) -> bytes:
    """CREATE2 address with the caller folded into the salt."""
    effective_salt = keccak(caller + salt)
    return keccak(b"\xff" + deployer + effective_salt + PROXY_INIT_CODE_HASH)[12:]


class DryRunChainClient(ChainClient):
    """Simulated chain.

    Attributes:
        balances: address -> wei
        code: address -> deployed bytecode
        revert_transfers: proxies whose transferFunds call reverts
        failing_balance_reads: addresses whose balance lookup errors
        revert_deploys: make every deployMultiple revert
        unavailable: make every call fail as if the node were down
        transactions: (kind, tx_hash, detail) for every mined transaction
    """

    def __init__(self):
        self.balances: dict[bytes, int] = {}
        self.code: dict[bytes, bytes] = {}
        self.revert_transfers: set[bytes] = set()
        self.failing_balance_reads: set[bytes] = set()
        self.revert_deploys = False
        self.unavailable = False
        self.transactions: list[tuple[str, bytes, object]] = []
        self._counter = itertools.count(1)

    def fund(self, address: bytes, amount: int) -> None:
        """Credit ``amount`` wei to an address."""
        self.balances[address] = self.balances.get(address, 0) + amount

    def is_deployed(self, address: bytes) -> bool:
        return address in self.code

    def _next_tx_hash(self) -> bytes:
        return keccak(f"dryrun-tx-{next(self._counter)}".encode())

    def _check_available(self) -> None:
        if self.unavailable:
            raise ChainUnavailableError("dry-run chain unavailable")

    async def get_balance(self, address: bytes) -> bytes:
        self._check_available()
        if address in self.failing_balance_reads:
            raise ChainUnavailableError(f"eth_getBalance failed for 0x{address.hex()}")
        await asyncio.sleep(0)
        return int_to_word(self.balances.get(address, 0))

    async def get_code(self, address: bytes) -> bytes:
        self._check_available()
        await asyncio.sleep(0)
        return self.code.get(address, b"")

    async def predict_addresses(
        self, deployer: bytes, caller: bytes, salts: list[bytes]
    ) -> list[bytes]:
        self._check_available()
        await asyncio.sleep(0)
        return [compute_proxy_address(deployer, caller, salt) for salt in salts]

    async def deploy_proxies(
        self, deployer: bytes, signer: Signer, salts: list[bytes]
    ) -> list[bytes]:
        salts = list(dict.fromkeys(salts))
        predicted = await self.predict_addresses(deployer, signer.address, salts)
        missing = [
            (salt, address)
            for salt, address in zip(salts, predicted)
            if not self.is_deployed(address)
        ]
        if not missing:
            return []

        await asyncio.sleep(0)
        tx_hash = self._next_tx_hash()
        if self.revert_deploys:
            raise TransactionRevertedError(f"deployMultiple reverted: tx 0x{tx_hash.hex()}", tx_hash)

        for _, address in missing:
            self.code[address] = PROXY_CODE
        addresses = [address for _, address in missing]
        self.transactions.append(("deploy", tx_hash, addresses))
        logger.info(f"[DRY RUN] Deployed {len(addresses)} proxies")
        return addresses

    async def transfer_out(self, signer: Signer, proxy: bytes, treasury: bytes) -> bytes:
        amount = int.from_bytes(await self.get_balance(proxy), "big")
        if amount == 0:
            return ZERO_TX_HASH

        if not await self.get_code(proxy):
            raise ProxyNotDeployedError(proxy)

        tx_hash = self._next_tx_hash()
        if proxy in self.revert_transfers:
            raise TransactionRevertedError(
                f"transferFunds reverted on proxy 0x{proxy.hex()}: tx 0x{tx_hash.hex()}", tx_hash
            )

        # Re-read at execution time; a concurrent sweep may have drained it
        amount = self.balances.get(proxy, 0)
        self.balances[proxy] = 0
        self.fund(treasury, amount)
        self.transactions.append(("transfer", tx_hash, (proxy, amount)))
        logger.info(f"[DRY RUN] Routed {amount} wei from 0x{proxy.hex()}")
        return tx_hash

    def transactions_of(self, kind: str) -> list[tuple[str, bytes, object]]:
        return [tx for tx in self.transactions if tx[0] == kind]

    async def health_check(self) -> bool:
        return not self.unavailable

    def __repr__(self) -> str:
        return f"DryRunChainClient(deployed={len(self.code)}, txs={len(self.transactions)})"


_dry_run_chain: Optional[DryRunChainClient] = None


def get_dry_run_chain() -> DryRunChainClient:
    """Process-wide simulated chain shared by the API and background jobs."""
    global _dry_run_chain
    if _dry_run_chain is None:
        _dry_run_chain = DryRunChainClient()
    return _dry_run_chain
