"""Chain client and signer factory.

Creates the configured chain backend and signing identity.
"""

import logging
from typing import Optional

from fundrouter.chain.base import ChainClient
from fundrouter.chain.signer import AddressOnlySigner, LocalSigner, Signer
from fundrouter.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Identity used for predictions when no key is configured in dry-run mode
DRY_RUN_CALLER = bytes.fromhex("00000000000000000000000000000000000d1e57")

_chain_instance: Optional[ChainClient] = None


def get_chain_client(settings: Optional[Settings] = None) -> ChainClient:
    """Get the configured chain client (singleton).

    Dry-run mode uses the shared in-memory chain.
    """
    global _chain_instance

    if _chain_instance is not None:
        return _chain_instance

    settings = settings or get_settings()
    if settings.dry_run:
        from fundrouter.chain.dryrun import get_dry_run_chain

        logger.info("Initializing dry-run chain client")
        _chain_instance = get_dry_run_chain()
    else:
        from fundrouter.chain.eth import EthChainClient

        logger.info(f"Initializing EVM chain client for {settings.rpc_url}")
        _chain_instance = EthChainClient(
            settings.rpc_url,
            timeout=settings.rpc_timeout,
            receipt_timeout=settings.receipt_timeout,
            poll_interval=settings.receipt_poll_interval,
        )
    return _chain_instance


def get_signer(settings: Optional[Settings] = None) -> Signer:
    """Build the signer from configuration.

    Raises:
        RuntimeError: If no key is configured outside dry-run mode
    """
    settings = settings or get_settings()
    if settings.private_key:
        return LocalSigner(settings.private_key)
    if settings.dry_run:
        return AddressOnlySigner(DRY_RUN_CALLER)
    raise RuntimeError("PRIVATE_KEY must be set when DRY_RUN is disabled")


def reset_chain_client() -> None:
    """Reset the chain client instance (for testing)."""
    global _chain_instance
    _chain_instance = None
