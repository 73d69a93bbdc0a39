"""Deposit creation: derive the receiving address and persist a pending deposit."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fundrouter.addresses import derive_address
from fundrouter.chain.base import ChainClient
from fundrouter.ledger.database import get_db
from fundrouter.ledger.models import Deposit
from fundrouter.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


async def create_deposit(
    chain: ChainClient,
    deployer: bytes,
    caller: bytes,
    user: bytes,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Deposit:
    """Create (or return the existing) deposit for a user.

    The address is predicted once here and never recomputed.

    Args:
        chain: Chain client used for the address prediction
        deployer: Deployer contract address
        caller: Address of the signer that will deploy the proxy
        user: 20-byte user identifier

    Returns:
        The stored deposit, status ``pending`` when newly created
    """
    salt, address = await derive_address(chain, deployer, caller, user)

    async with get_db(session_factory) as session:
        repo = DepositRepository(session)
        deposit = await repo.insert(user, salt, address)

    logger.info(f"Deposit {deposit.id} for user 0x{user.hex()} at 0x{address.hex()}")
    return deposit
