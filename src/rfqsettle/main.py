"""Main entry point - runs the API and the signature relayer."""

import asyncio
import logging
import signal

import uvicorn

from rfqsettle.api.app import create_app
from rfqsettle.config import get_settings
from rfqsettle.ledger.database import close_db, get_db, init_db
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.messaging.verifier import QuorumVerifier, SignerSet
from rfqsettle.rfq.contract import RfqContract
from rfqsettle.services.relayer import Relayer
from rfqsettle.signing.local import LocalSigner

logger = logging.getLogger(__name__)


class Application:
    """Main application that runs the API and, when configured, the relayer."""

    def __init__(self):
        self.settings = get_settings()
        self.relayer = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        logging.basicConfig(
            level=self.settings.effective_log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting rfqsettle...")
        logger.info(f"Environment: {self.settings.environment}")

        await init_db()
        logger.info("Database initialized")

        tasks = []

        if self.settings.relayer_address:
            self.relayer = await self._create_relayer()
        else:
            logger.warning("RELAYER_ADDRESS not set - relayer disabled")
        if self.relayer:
            tasks.append(asyncio.create_task(self._run_relayer()))
            logger.info("Relayer task created")

        tasks.append(asyncio.create_task(self._run_api()))
        logger.info("API task created")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self._cleanup()

    async def _create_relayer(self):
        """Build a relayer over every contract in the ledger."""
        if not self.settings.signer_set:
            logger.warning("SIGNER_SET not set - relayer disabled")
            return None

        signer = LocalSigner.from_env()
        if not await signer.health_check():
            logger.warning("No VALIDATOR_PRIVATE_KEY_* keys loaded - relayer disabled")
            return None

        verifier = QuorumVerifier(SignerSet.from_string(self.settings.signer_set))
        async with get_db() as session:
            states = await LedgerRepository(session).list_contract_states()
        contracts = [
            RfqContract(
                state.chain_id,
                state.address,
                verifier,
                lock_timeout=self.settings.lock_timeout,
            )
            for state in states
        ]
        if not contracts:
            logger.warning("No RFQ contracts deployed - relayer disabled")
            return None

        return Relayer(
            contracts,
            [signer],
            self.settings.relayer_address,
            max_attempts=self.settings.relayer_max_attempts,
        )

    async def _run_relayer(self):
        """Run the relayer until shutdown."""
        try:
            await self.relayer.run(
                self._shutdown_event, interval=self.settings.relayer_poll_interval
            )
        except asyncio.CancelledError:
            logger.info("Relayer cancelled")

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level=self.settings.effective_log_level.lower(),
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")

    async def _cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    app = Application()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

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
