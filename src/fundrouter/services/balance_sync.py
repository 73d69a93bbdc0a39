"""Balance reconciliation.

Periodically refreshes the cached on-chain balance of every unsettled
deposit. Never changes a deposit's status.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fundrouter.chain.base import ChainClient, ChainError
from fundrouter.ledger.database import get_db
from fundrouter.ledger.models import UNSETTLED_STATUSES
from fundrouter.ledger.repository import DepositFilters, DepositRepository

logger = logging.getLogger(__name__)


class BalanceReconciler:
    """Keeps ``Deposit.balance`` eventually consistent with the chain."""

    def __init__(
        self,
        chain: ChainClient,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        interval_seconds: int = 60,
    ):
        self.chain = chain
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds

    async def sync_once(self) -> int:
        """Refresh balances for all pending/proxied deposits.

        A failed balance read leaves that deposit's stored balance as it was.

        Returns:
            Number of deposits whose balance was written
        """
        async with get_db(self.session_factory) as session:
            deposits = await DepositRepository(session).query(
                DepositFilters(statuses=set(UNSETTLED_STATUSES))
            )

        if not deposits:
            logger.debug("No unsettled deposits to reconcile")
            return 0

        results = await asyncio.gather(
            *(self.chain.get_balance(d.address) for d in deposits),
            return_exceptions=True,
        )

        balances: dict[int, bytes] = {}
        for deposit, result in zip(deposits, results):
            if isinstance(result, ChainError):
                logger.warning(f"Balance read failed for deposit {deposit.id}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            balances[deposit.id] = result

        if not balances:
            return 0

        async with get_db(self.session_factory) as session:
            updated = await DepositRepository(session).update_balance_batch(balances)

        logger.debug(f"Reconciled {updated} of {len(deposits)} deposit balance(s)")
        return updated

    async def run(self) -> None:
        """Run continuous reconciliation loop."""
        logger.info(f"Starting balance reconciler (interval: {self.interval_seconds}s)")

        while True:
            try:
                await self.sync_once()
            except Exception as e:
                logger.error(f"Reconciler error: {e}")

            await asyncio.sleep(self.interval_seconds)
