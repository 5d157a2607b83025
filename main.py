#!/usr/bin/env python3
"""
Registration Payment Notifications Service.

Main entry point that wires the PayFast ITN pipeline:
- Database connection for application records
- PayFast validation client
- ITN, payment-return and admin API

Usage:
    python main.py

Environment variables:
    See config.py for all configuration options.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from aiohttp import web

from config import config
from database.db import Database, close_db, get_db
from services.attestation import RemoteAttestor
from services.reconciliation import ReconciliationStore
from api.itn_api import ITNController, create_app


# Configure logging
def setup_logging():
    """Configure logging based on config."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if config.logging.file:
        # Ensure log directory exists
        log_dir = os.path.dirname(config.logging.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(config.logging.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )

    # Reduce noise from third-party libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class PaymentNotificationService:
    """
    Main service orchestrator.

    Owns the database connection, the PayFast validation client and
    the aiohttp server, and shuts them down in reverse order.
    """

    def __init__(self):
        self.db: Optional[Database] = None
        self.attestor: Optional[RemoteAttestor] = None
        self.api_app: Optional[web.Application] = None
        self.api_runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all services."""
        logger.info("=" * 60)
        logger.info(f"Starting {config.service.name}")
        logger.info("=" * 60)

        # Validate configuration
        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError("Invalid configuration")

        if not config.itn.passphrase.strip():
            logger.warning("PAYFAST_PASSPHRASE is not set; signatures are checked without one")
        if not config.admin.password:
            logger.warning("ADMIN_PASSWORD is not set; manual mark-paid is disabled")

        # Initialize database
        logger.info("Initializing database...")
        self.db = await get_db()
        await self.db.init_schema()

        # PayFast validation client
        self.attestor = RemoteAttestor(config.itn)
        await self.attestor.start()

        # Start API server
        logger.info("Starting API server...")
        controller = ITNController(
            itn_config=config.itn,
            store=ReconciliationStore(self.db),
            attestor=self.attestor,
            admin_config=config.admin,
            return_redirect_url=config.api.return_redirect_url,
            service_name=config.service.name
        )
        self.api_app = create_app(controller)

        self.api_runner = web.AppRunner(self.api_app)
        await self.api_runner.setup()

        site = web.TCPSite(
            self.api_runner,
            config.api.host,
            config.api.port
        )
        await site.start()

        logger.info("=" * 60)
        logger.info("Service started successfully!")
        logger.info(f"API server running at http://{config.api.host}:{config.api.port}")
        logger.info(f"PayFast mode: {'sandbox' if config.itn.sandbox else 'live'}")
        logger.info(f"Validation URL: {config.itn.validate_url}")
        logger.info("=" * 60)

    async def stop(self) -> None:
        """Stop all services gracefully."""
        logger.info("Initiating graceful shutdown...")

        # Stop accepting new requests; in-flight requests get shutdown_timeout to finish
        if self.api_runner:
            try:
                await asyncio.wait_for(
                    self.api_runner.cleanup(),
                    timeout=config.service.shutdown_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"API server did not stop within {config.service.shutdown_timeout}s, "
                    f"continuing shutdown"
                )

        if self.attestor:
            await self.attestor.stop()

        # Close database
        await close_db()

        logger.info("Shutdown complete")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the service until shutdown signal."""
        await self.start()

        # Wait for shutdown signal
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        asyncio.create_task(self.stop())


def handle_signal(service: PaymentNotificationService, sig: signal.Signals) -> None:
    """Handle shutdown signals."""
    logger.info(f"Received signal {sig.name}, initiating shutdown...")
    service.request_shutdown()


async def main() -> None:
    """Main entry point."""
    setup_logging()

    service = PaymentNotificationService()

    # Set up signal handlers
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: handle_signal(service, s)
        )

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service error: {e}", exc_info=True)
        await service.stop()
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
