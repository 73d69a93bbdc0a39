"""Deposit lifecycle services."""

from fundrouter.services.balance_sync import BalanceReconciler
from fundrouter.services.deposit_router import (
    DeploymentFailedError,
    DepositRouter,
    RoutingResult,
    run_router_loop,
)
from fundrouter.services.deposits import create_deposit

__all__ = [
    "BalanceReconciler",
    "DeploymentFailedError",
    "DepositRouter",
    "RoutingResult",
    "run_router_loop",
    "create_deposit",
]
