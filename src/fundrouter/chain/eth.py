"""EVM chain client.

Talks raw JSON-RPC over httpx and encodes contract calls with eth_abi.

Contracts:
- DeterministicProxyDeployer: calculateDestinationAddresses(bytes32[]) view,
  deployMultiple(bytes32[])
- FundRouter proxy: transferFunds(uint256, address[], uint256[], address)
"""

import asyncio
import logging
from typing import Optional

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, to_canonical_address, to_checksum_address

from fundrouter.chain.base import (
    ZERO_TX_HASH,
    ChainClient,
    ChainError,
    ChainUnavailableError,
    ProxyNotDeployedError,
    TransactionRevertedError,
)
from fundrouter.chain.rpc import JsonRpcClient
from fundrouter.chain.signer import Signer
from fundrouter.utils.hexcodec import decode_hex, int_to_word, word_to_int

logger = logging.getLogger(__name__)

PREDICT_SELECTOR = function_signature_to_4byte_selector("calculateDestinationAddresses(bytes32[])")
DEPLOY_SELECTOR = function_signature_to_4byte_selector("deployMultiple(bytes32[])")
TRANSFER_SELECTOR = function_signature_to_4byte_selector(
    "transferFunds(uint256,address[],uint256[],address)"
)

# Headroom over eth_estimateGas
GAS_LIMIT_MULTIPLIER = 1.2


def _hex(value: bytes) -> str:
    return "0x" + value.hex()


def _parse_reply(method: str, result, as_quantity: bool = False):
    """Decode a hex reply from the node as an int quantity or raw bytes.

    Raises:
        ChainUnavailableError: If the reply is null or not valid hex
    """
    try:
        if as_quantity:
            return int(result, 16)
        return decode_hex(result)
    except (TypeError, ValueError) as e:
        raise ChainUnavailableError(f"{method}: malformed result {result!r}") from e


class EthChainClient(ChainClient):
    """Chain client for a single EVM network.

    Transactions are legacy (gasPrice) transactions. Nonces are allocated under
    a lock so concurrent sweeps from one signer never collide.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        receipt_timeout: float = 300.0,
        poll_interval: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            rpc_url: JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            receipt_timeout: Maximum seconds to wait for a receipt
            poll_interval: Seconds between receipt polls
            transport: Optional httpx transport override
        """
        self.rpc = JsonRpcClient(rpc_url, timeout=timeout, transport=transport)
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self._chain_id: Optional[int] = None
        self._nonce_lock = asyncio.Lock()
        self._next_nonce: dict[bytes, int] = {}

    # Reads

    async def get_balance(self, address: bytes) -> bytes:
        result = await self.rpc.call("eth_getBalance", [to_checksum_address(address), "latest"])
        balance = _parse_reply("eth_getBalance", result, as_quantity=True)
        try:
            return int_to_word(balance)
        except OverflowError as e:
            raise ChainUnavailableError(f"eth_getBalance: malformed result {result!r}") from e

    async def get_code(self, address: bytes) -> bytes:
        result = await self.rpc.call("eth_getCode", [to_checksum_address(address), "latest"])
        return _parse_reply("eth_getCode", result)

    async def predict_addresses(
        self, deployer: bytes, caller: bytes, salts: list[bytes]
    ) -> list[bytes]:
        if not salts:
            return []
        data = PREDICT_SELECTOR + encode(["bytes32[]"], [salts])
        raw = await self._eth_call(deployer, data, sender=caller)
        addresses = self._decode_addresses(raw, "calculateDestinationAddresses")
        if len(addresses) != len(salts):
            raise ChainError(
                f"calculateDestinationAddresses returned {len(addresses)} addresses for {len(salts)} salts"
            )
        return addresses

    # Writes

    async def deploy_proxies(
        self, deployer: bytes, signer: Signer, salts: list[bytes]
    ) -> list[bytes]:
        salts = list(dict.fromkeys(salts))
        predicted = await self.predict_addresses(deployer, signer.address, salts)

        missing = []
        for address, salt in zip(predicted, salts):
            code = await self.get_code(address)
            if code:
                logger.debug(f"Proxy already deployed at 0x{address.hex()}, skipping")
            else:
                missing.append(salt)

        if not missing:
            logger.info("All proxies already deployed")
            return []

        data = DEPLOY_SELECTOR + encode(["bytes32[]"], [missing])

        # Simulate to get all deployed addresses
        raw = await self._eth_call(deployer, data, sender=signer.address)
        addresses = self._decode_addresses(raw, "deployMultiple")

        logger.info(f"Deploying {len(missing)} proxies via 0x{deployer.hex()}")
        tx_hash = await self._send_transaction(signer, deployer, data)
        await self._wait_for_success(tx_hash, "deployMultiple")
        logger.info(f"Deployed {len(addresses)} proxies in tx {_hex(tx_hash)}")
        return addresses

    async def transfer_out(self, signer: Signer, proxy: bytes, treasury: bytes) -> bytes:
        amount = word_to_int(await self.get_balance(proxy))
        logger.info(f"Routing funds from 0x{proxy.hex()}: {amount} wei")
        if amount == 0:
            return ZERO_TX_HASH

        if not await self.get_code(proxy):
            raise ProxyNotDeployedError(proxy)

        data = TRANSFER_SELECTOR + encode(
            ["uint256", "address[]", "uint256[]", "address"],
            [amount, [], [], to_checksum_address(treasury)],
        )
        tx_hash = await self._send_transaction(signer, proxy, data)
        await self._wait_for_success(tx_hash, f"transferFunds on proxy 0x{proxy.hex()}")
        return tx_hash

    async def health_check(self) -> bool:
        try:
            await self._get_chain_id()
            return True
        except ChainError as e:
            logger.warning(f"Chain health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.rpc.close()

    # Internals

    async def _eth_call(self, to: bytes, data: bytes, sender: Optional[bytes] = None) -> bytes:
        call = {"to": to_checksum_address(to), "data": _hex(data)}
        if sender is not None:
            call["from"] = to_checksum_address(sender)
        result = await self.rpc.call("eth_call", [call, "latest"])
        return _parse_reply("eth_call", result)

    @staticmethod
    def _decode_addresses(raw: bytes, method: str) -> list[bytes]:
        try:
            (addresses,) = decode(["address[]"], raw)
        except DecodingError as e:
            raise ChainError(f"{method}: cannot decode address[] result: {e}") from e
        return [to_canonical_address(a) for a in addresses]

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = _parse_reply(
                "eth_chainId", await self.rpc.call("eth_chainId", []), as_quantity=True
            )
        return self._chain_id

    async def _send_transaction(self, signer: Signer, to: bytes, data: bytes) -> bytes:
        """Build, sign and broadcast a transaction; returns its hash."""
        sender = to_checksum_address(signer.address)
        target = to_checksum_address(to)

        gas_price = _parse_reply(
            "eth_gasPrice", await self.rpc.call("eth_gasPrice", []), as_quantity=True
        )
        gas = _parse_reply(
            "eth_estimateGas",
            await self.rpc.call(
                "eth_estimateGas", [{"from": sender, "to": target, "data": _hex(data)}]
            ),
            as_quantity=True,
        )
        chain_id = await self._get_chain_id()

        async with self._nonce_lock:
            pending = _parse_reply(
                "eth_getTransactionCount",
                await self.rpc.call("eth_getTransactionCount", [sender, "pending"]),
                as_quantity=True,
            )
            nonce = max(pending, self._next_nonce.get(signer.address, 0))

            tx = {
                "nonce": nonce,
                "gasPrice": gas_price,
                "gas": int(gas * GAS_LIMIT_MULTIPLIER),
                "to": target,
                "value": 0,
                "data": _hex(data),
                "chainId": chain_id,
            }
            raw_tx = await signer.sign_transaction(tx)

            try:
                result = await self.rpc.call("eth_sendRawTransaction", [_hex(raw_tx)])
            except ChainError:
                self._next_nonce.pop(signer.address, None)
                raise
            self._next_nonce[signer.address] = nonce + 1

        tx_hash = _parse_reply("eth_sendRawTransaction", result)
        logger.debug(f"Broadcast tx {result} (nonce {nonce})")
        return tx_hash

    async def _wait_for_success(self, tx_hash: bytes, label: str) -> dict:
        """Poll for the receipt and require status 1."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.receipt_timeout

        while True:
            receipt = await self.rpc.call("eth_getTransactionReceipt", [_hex(tx_hash)])
            if receipt is not None:
                break
            if loop.time() >= deadline:
                raise ChainUnavailableError(
                    f"{label}: no receipt for {_hex(tx_hash)} after {self.receipt_timeout}s"
                )
            await asyncio.sleep(self.poll_interval)

        if not isinstance(receipt, dict):
            raise ChainUnavailableError(f"{label}: malformed receipt {receipt!r}")
        status = _parse_reply(
            "eth_getTransactionReceipt", receipt.get("status", "0x0"), as_quantity=True
        )
        if status != 1:
            raise TransactionRevertedError(f"{label} reverted: tx {_hex(tx_hash)}", tx_hash=tx_hash)
        return receipt
