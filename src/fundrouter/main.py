"""Main entry point - runs the API, the balance reconciler and the router loop."""

import asyncio
import logging
import signal

import uvicorn

from fundrouter.api.app import create_app
from fundrouter.chain.factory import get_chain_client, get_signer
from fundrouter.config import get_settings
from fundrouter.ledger.database import close_db, init_db
from fundrouter.services.balance_sync import BalanceReconciler
from fundrouter.services.deposit_router import DepositRouter, run_router_loop
from fundrouter.utils.hexcodec import ADDRESS_LENGTH, validate_hex

logger = logging.getLogger(__name__)


class Application:
    """Main application that runs the API and background jobs."""

    def __init__(self):
        self.settings = get_settings()
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting fund router...")
        logger.info(f"Environment: {self.settings.environment}")
        if self.settings.dry_run:
            logger.warning("DRY_RUN enabled - using the in-memory chain")

        # Initialize database
        await init_db()
        logger.info("Database initialized")

        chain = get_chain_client(self.settings)
        tasks = []

        reconciler = BalanceReconciler(chain, interval_seconds=self.settings.reconcile_interval)
        tasks.append(asyncio.create_task(reconciler.run()))
        logger.info("Reconciler task created")

        if self.settings.route_interval > 0:
            router = DepositRouter(
                chain,
                get_signer(self.settings),
                validate_hex(self.settings.deployer_address, ADDRESS_LENGTH, "deployer_address"),
                validate_hex(self.settings.treasury_address, ADDRESS_LENGTH, "treasury_address"),
                lock_timeout=self.settings.sweep_lock_timeout,
            )
            tasks.append(asyncio.create_task(run_router_loop(router, self.settings.route_interval)))
            logger.info("Router task created")

        # Start API server
        tasks.append(asyncio.create_task(self._run_api()))
        logger.info("API task created")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        # Cancel all tasks
        for task in tasks:
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*tasks, return_exceptions=True)

        # Cleanup
        await self._cleanup(chain)

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    async def _cleanup(self, chain):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await chain.close()
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application()

    # Setup signal handlers
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
