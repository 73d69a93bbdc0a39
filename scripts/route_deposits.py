#!/usr/bin/env python3
"""Run one routing pass from the command line.

Deploys missing proxies and sweeps funded proxies to the treasury.

Usage:
    python scripts/route_deposits.py [--address 0x...] [--reconcile]

Options:
    --address    Only route the deposit at this address
    --reconcile  Refresh cached balances before routing
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

load_dotenv()

from fundrouter.chain.factory import get_chain_client, get_signer
from fundrouter.config import get_settings
from fundrouter.ledger.database import StoreError, close_db, init_db
from fundrouter.services.balance_sync import BalanceReconciler
from fundrouter.services.deposit_router import DeploymentFailedError, DepositRouter
from fundrouter.utils.hexcodec import ADDRESS_LENGTH, InvalidInputError, validate_hex

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def run(address: str | None, reconcile: bool) -> int:
    settings = get_settings()
    await init_db()

    chain = get_chain_client(settings)
    try:
        target = validate_hex(address, ADDRESS_LENGTH, "address") if address else None

        if reconcile:
            updated = await BalanceReconciler(chain).sync_once()
            logger.info(f"Refreshed {updated} balance(s)")

        router = DepositRouter(
            chain,
            get_signer(settings),
            validate_hex(settings.deployer_address, ADDRESS_LENGTH, "deployer_address"),
            validate_hex(settings.treasury_address, ADDRESS_LENGTH, "treasury_address"),
            lock_timeout=settings.sweep_lock_timeout,
        )
        result = await router.route(target)
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    except InvalidInputError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    except (DeploymentFailedError, StoreError) as e:
        logger.error(f"Routing failed: {e}")
        return 1
    finally:
        await chain.close()
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Route deposits to the treasury")
    parser.add_argument("--address", help="Only route this proxy address (0x...)")
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="Refresh cached balances before routing",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.address, args.reconcile)))


if __name__ == "__main__":
    main()
