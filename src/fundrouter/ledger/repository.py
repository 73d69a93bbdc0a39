"""Repository for deposit ledger operations."""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundrouter.ledger.models import STATUS_PREDECESSORS, UNSETTLED_STATUSES, Deposit, DepositStatus


@dataclass
class DepositFilters:
    """Filters for :meth:`DepositRepository.query`.

    A ``limit`` of 0 means no limit.
    """

    user: Optional[bytes] = None
    salt: Optional[bytes] = None
    address: Optional[bytes] = None
    statuses: set[DepositStatus] = field(default_factory=set)
    limit: int = 0
    offset: int = 0


class DepositRepository:
    """Repository for all deposit-related database operations.

    The repository never commits; the caller's ``get_db`` block is the
    transaction boundary.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def query(self, filters: DepositFilters) -> list[Deposit]:
        """Get deposits matching the filters, newest first."""
        stmt = select(Deposit)
        if filters.user is not None:
            stmt = stmt.where(Deposit.user == filters.user)
        if filters.salt is not None:
            stmt = stmt.where(Deposit.salt == filters.salt)
        if filters.address is not None:
            stmt = stmt.where(Deposit.address == filters.address)
        if filters.statuses:
            stmt = stmt.where(Deposit.status.in_([s.value for s in filters.statuses]))
        stmt = stmt.order_by(Deposit.created_at.desc(), Deposit.id.desc())
        if filters.limit > 0:
            stmt = stmt.limit(filters.limit)
        if filters.offset > 0:
            stmt = stmt.offset(filters.offset)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, deposit_id: int) -> Optional[Deposit]:
        """Get a deposit by ID."""
        stmt = select(Deposit).where(Deposit.id == deposit_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_salt(self, salt: bytes) -> Optional[Deposit]:
        """Get a deposit by its salt."""
        stmt = select(Deposit).where(Deposit.salt == salt)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert(self, user: bytes, salt: bytes, address: bytes) -> Deposit:
        """Create a new pending deposit.

        If a deposit with the same salt exists it is returned unchanged.
        """
        existing = await self.get_by_salt(salt)
        if existing is not None:
            return existing

        deposit = Deposit(
            user=user,
            salt=salt,
            address=address,
            status=DepositStatus.PENDING.value,
        )
        self.session.add(deposit)
        await self.session.flush()
        await self.session.refresh(deposit)
        return deposit

    async def update_status_batch(self, ids: Iterable[int], new_status: DepositStatus) -> int:
        """Move many deposits to ``new_status`` in one statement.

        Rows not in a legal predecessor state are left alone.

        Returns:
            Number of rows updated
        """
        ids = list(ids)
        predecessors = STATUS_PREDECESSORS[new_status]
        if not ids or not predecessors:
            return 0

        stmt = (
            update(Deposit)
            .where(
                Deposit.id.in_(ids),
                Deposit.status.in_([s.value for s in predecessors]),
            )
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def update_status_single(
        self,
        deposit_id: int,
        new_status: DepositStatus,
        clear_balance: bool = False,
    ) -> bool:
        """Move one deposit to ``new_status``, optionally clearing its balance.

        Returns:
            True if the row was updated
        """
        predecessors = STATUS_PREDECESSORS[new_status]
        if not predecessors:
            return False

        values: dict = {"status": new_status.value}
        if clear_balance:
            values["balance"] = None

        stmt = (
            update(Deposit)
            .where(
                Deposit.id == deposit_id,
                Deposit.status.in_([s.value for s in predecessors]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def update_balance_batch(self, balances: Mapping[int, bytes]) -> int:
        """Store observed balances for many deposits.

        Only unsettled rows are touched, so a balance read before a sweep
        committed can never resurrect a cleared balance.

        Returns:
            Number of rows updated
        """
        updated = 0
        unsettled = [s.value for s in UNSETTLED_STATUSES]
        for deposit_id, balance in balances.items():
            stmt = (
                update(Deposit)
                .where(Deposit.id == deposit_id, Deposit.status.in_(unsettled))
                .values(balance=balance)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            updated += result.rowcount
        return updated

    async def count_by_status(self) -> dict[str, int]:
        """Count deposits per status; every status is present."""
        stmt = select(Deposit.status, func.count(Deposit.id)).group_by(Deposit.status)
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in DepositStatus}
        for status, count in result.all():
            counts[str(status)] = count
        return counts
