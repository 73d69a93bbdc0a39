"""SQLAlchemy models for the deposit ledger."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, LargeBinary, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class DepositStatus(str, Enum):
    """Lifecycle of a deposit. Only ever moves forward."""

    PENDING = "pending"    # Address predicted, proxy not deployed yet
    PROXIED = "proxied"    # Proxy deployed at the address
    ROUTED = "routed"      # Funds swept to the treasury


# Legal predecessor states for each target status
STATUS_PREDECESSORS: dict[DepositStatus, tuple[DepositStatus, ...]] = {
    DepositStatus.PENDING: (),
    DepositStatus.PROXIED: (DepositStatus.PENDING,),
    DepositStatus.ROUTED: (DepositStatus.PROXIED,),
}

UNSETTLED_STATUSES = frozenset({DepositStatus.PENDING, DepositStatus.PROXIED})


class Deposit(Base):
    """A user's deposit intent and its deterministic receiving address."""

    __tablename__ = "deposits"
    __table_args__ = (
        CheckConstraint('length("user") = 20', name="ck_deposits_user_len"),
        CheckConstraint("length(salt) = 32", name="ck_deposits_salt_len"),
        CheckConstraint("length(address) = 20", name="ck_deposits_address_len"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user: Mapped[bytes] = mapped_column(LargeBinary(20), nullable=False, index=True)
    salt: Mapped[bytes] = mapped_column(LargeBinary(32), unique=True, nullable=False)
    address: Mapped[bytes] = mapped_column(LargeBinary(20), unique=True, nullable=False)
    balance: Mapped[Optional[bytes]] = mapped_column(LargeBinary(32), nullable=True)  # 32-byte BE
    status: Mapped[DepositStatus] = mapped_column(
        String(20), default=DepositStatus.PENDING.value, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def balance_wei(self) -> Optional[int]:
        """Cached balance as an integer, or None once swept/unknown."""
        if self.balance is None:
            return None
        return int.from_bytes(self.balance, "big")

    def __repr__(self) -> str:
        return f"Deposit(id={self.id}, address=0x{self.address.hex()}, status={self.status})"
