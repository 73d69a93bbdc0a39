"""Ledger module for deposit records."""

from fundrouter.ledger.database import StoreError, get_db, init_db
from fundrouter.ledger.models import Deposit, DepositStatus
from fundrouter.ledger.repository import DepositFilters, DepositRepository

__all__ = [
    # Models
    "Deposit",
    # Enums
    "DepositStatus",
    # Database
    "get_db",
    "init_db",
    "StoreError",
    "DepositFilters",
    "DepositRepository",
]
