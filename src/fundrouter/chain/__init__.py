"""Chain access: balances, proxy deployment and fund transfers.

Usage:
    from fundrouter.chain import get_chain_client, get_signer

    chain = get_chain_client()
    signer = get_signer()
    await chain.deploy_proxies(deployer, signer, salts)
"""

from fundrouter.chain.base import (
    ZERO_TX_HASH,
    ChainClient,
    ChainError,
    ChainUnavailableError,
    ProxyNotDeployedError,
    TransactionRevertedError,
)
from fundrouter.chain.factory import get_chain_client, get_signer, reset_chain_client
from fundrouter.chain.signer import LocalSigner, Signer, SigningError

__all__ = [
    "ZERO_TX_HASH",
    "ChainClient",
    "ChainError",
    "ChainUnavailableError",
    "ProxyNotDeployedError",
    "TransactionRevertedError",
    "Signer",
    "LocalSigner",
    "SigningError",
    "get_chain_client",
    "get_signer",
    "reset_chain_client",
]
