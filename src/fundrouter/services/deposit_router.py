"""Deposit router - deploys missing proxies and sweeps proxy funds to the treasury.

One run:
1. Select pending/proxied deposits (optionally one address)
2. Snapshot status counts (observability only)
3. Deploy proxies for pending deposits in one batch transaction
4. Mark the deposits whose address now carries code proxied, in one transaction
5. Sweep every selected proxy concurrently, each committing its own outcome
6. Aggregate non-zero transaction hashes
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fundrouter.chain.base import ZERO_TX_HASH, ChainClient, ChainError
from fundrouter.chain.signer import Signer, SigningError
from fundrouter.ledger.database import StoreError, get_db
from fundrouter.ledger.models import UNSETTLED_STATUSES, Deposit, DepositStatus
from fundrouter.ledger.repository import DepositFilters, DepositRepository
from fundrouter.utils.locks import DepositLock, LockTimeoutError

logger = logging.getLogger(__name__)


class DeploymentFailedError(Exception):
    """Raised when the proxy deployment transaction fails; nothing was persisted."""

    pass


@dataclass
class SweepOutcome:
    """Result of sweeping one deposit."""

    deposit_id: int
    tx_hash: Optional[bytes] = None  # None for zero balance or skipped
    skipped: bool = False


@dataclass
class RoutingResult:
    """Aggregate result of a routing run."""

    tx_hashes: list[bytes] = field(default_factory=list)
    failed: int = 0
    skipped: int = 0
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def routed(self) -> int:
        return len(self.tx_hashes)

    def to_dict(self) -> dict:
        return {
            "tx_hashes": ["0x" + tx.hex() for tx in self.tx_hashes],
            "routed": self.routed,
            "failed": self.failed,
            "skipped": self.skipped,
            "counts": self.counts,
        }


class DepositRouter:
    """Drives deposits from pending to routed."""

    def __init__(
        self,
        chain: ChainClient,
        signer: Signer,
        deployer_address: bytes,
        treasury_address: bytes,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        """Initialize router.

        Args:
            chain: Chain client
            signer: Signer that deploys proxies and calls transferFunds
            deployer_address: DeterministicProxyDeployer contract
            treasury_address: Destination of swept funds
            session_factory: Session factory (defaults to the global one)
            lock_timeout: Seconds to wait for a deposit's sweep lock
        """
        self.chain = chain
        self.signer = signer
        self.deployer_address = deployer_address
        self.treasury_address = treasury_address
        self.session_factory = session_factory
        self.lock_timeout = lock_timeout

    async def route(self, address: Optional[bytes] = None) -> RoutingResult:
        """Run one routing pass.

        Args:
            address: Only route the deposit at this address

        Returns:
            RoutingResult with confirmed transaction hashes

        Raises:
            DeploymentFailedError: If proxy deployment failed (no status changed)
            StoreError: If the deposit store failed
        """
        filters = DepositFilters(
            address=address,
            statuses=set(UNSETTLED_STATUSES),
            limit=1 if address is not None else 0,
        )
        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            deposits = await repo.query(filters)
            counts = await repo.count_by_status()

        result = RoutingResult(counts=counts)
        if not deposits:
            logger.debug("No deposits to route")
            return result

        pending = [d for d in deposits if d.status == DepositStatus.PENDING]
        stranded: set[int] = set()
        if pending:
            ready = await self._deploy_proxies(pending)
            stranded = {d.id for d in pending} - {d.id for d in ready}
            result.failed += len(stranded)

            if ready:
                async with get_db(self.session_factory) as session:
                    moved = await DepositRepository(session).update_status_batch(
                        [d.id for d in ready], DepositStatus.PROXIED
                    )
                logger.info(f"Marked {moved} deposit(s) proxied")

        sweepable = [d for d in deposits if d.id not in stranded]
        outcomes = await asyncio.gather(
            *(self._sweep(deposit) for deposit in sweepable),
            return_exceptions=True,
        )

        store_error: Optional[StoreError] = None
        for deposit, outcome in zip(sweepable, outcomes):
            if isinstance(outcome, StoreError):
                logger.error(f"Store failed while routing deposit {deposit.id}: {outcome}")
                store_error = store_error or outcome
                result.failed += 1
            elif isinstance(outcome, (ChainError, SigningError)):
                logger.error(f"Routing failed for deposit {deposit.id}: {outcome}")
                result.failed += 1
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome.skipped:
                result.skipped += 1
            elif outcome.tx_hash is not None and outcome.tx_hash != ZERO_TX_HASH:
                result.tx_hashes.append(outcome.tx_hash)

        if store_error is not None:
            raise store_error

        logger.info(
            f"Routing run: {result.routed} routed, {result.failed} failed, "
            f"{result.skipped} skipped of {len(deposits)}"
        )
        return result

    async def _deploy_proxies(self, pending: list[Deposit]) -> list[Deposit]:
        """Deploy proxies for pending deposits, failing the run on any error.

        Returns:
            The pending deposits whose stored address now carries proxy code.
            A deposit predicted for a different caller never does and stays
            pending.
        """
        salts = [d.salt for d in pending]
        try:
            deployed = set(
                await self.chain.deploy_proxies(self.deployer_address, self.signer, salts)
            )
            ready = []
            for deposit in pending:
                if deposit.address in deployed or await self.chain.get_code(deposit.address):
                    ready.append(deposit)
                else:
                    logger.error(
                        f"Deposit {deposit.id}: no proxy at 0x{deposit.address.hex()}; "
                        "was the address predicted with a different caller?"
                    )
        except (ChainError, SigningError) as e:
            logger.error(f"Proxy deployment failed for {len(salts)} salt(s): {e}")
            raise DeploymentFailedError(str(e)) from e

        return ready

    async def _sweep(self, deposit: Deposit) -> SweepOutcome:
        """Sweep one proxy under its single-writer lock."""
        try:
            async with DepositLock(deposit.id, timeout=self.lock_timeout, operation="sweep"):
                async with get_db(self.session_factory) as session:
                    current = await DepositRepository(session).get(deposit.id)

                if current is None or current.status != DepositStatus.PROXIED:
                    logger.debug(f"Deposit {deposit.id} no longer proxied, skipping")
                    return SweepOutcome(deposit.id, skipped=True)

                tx_hash = await self.chain.transfer_out(
                    self.signer, current.address, self.treasury_address
                )
                if tx_hash == ZERO_TX_HASH:
                    return SweepOutcome(deposit.id)

                async with get_db(self.session_factory) as session:
                    await DepositRepository(session).update_status_single(
                        deposit.id, DepositStatus.ROUTED, clear_balance=True
                    )

                logger.info(f"Deposit {deposit.id} routed in tx 0x{tx_hash.hex()}")
                return SweepOutcome(deposit.id, tx_hash=tx_hash)

        except LockTimeoutError:
            logger.warning(f"Deposit {deposit.id} is being swept elsewhere, skipping")
            return SweepOutcome(deposit.id, skipped=True)


async def run_router_loop(router: DepositRouter, interval_seconds: int = 300):
    """Run the deposit router in a continuous loop.

    Args:
        router: Configured router
        interval_seconds: How often to route (default: 5 minutes)
    """
    logger.info(f"Starting deposit router (interval: {interval_seconds}s)")

    while True:
        try:
            result = await router.route()
            if result.routed:
                logger.info(f"Routed {result.routed} deposit(s)")
                for tx_hash in result.tx_hashes:
                    logger.info(f"  tx 0x{tx_hash.hex()}")
        except Exception as e:
            logger.error(f"Router error: {e}")

        await asyncio.sleep(interval_seconds)
