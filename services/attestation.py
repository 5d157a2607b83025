"""
PayFast Validation Service.

Confirms a notification by replaying it to PayFast's
server-to-server validation endpoint.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from config import ITNConfig
from models.notification import Notification, ValidationResult

logger = logging.getLogger(__name__)

VALID_RESPONSE = b'VALID'


class RemoteAttestor:
    """
    Client for PayFast's ITN validation endpoint.

    Any doubt counts as a rejection: network errors, timeouts, non-2xx
    statuses and any body other than ``VALID``. Retrying is left to
    PayFast's redelivery.
    """

    def __init__(self, itn_config: ITNConfig):
        """
        Initialize the attestor.

        Args:
            itn_config: ITN settings (host selection and timeout)
        """
        self.validate_url = itn_config.validate_url
        self.timeout = itn_config.timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the HTTP session."""
        logger.info(f"Starting PayFast validation client for {self.validate_url}")
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def validate(self, notification: Notification) -> ValidationResult:
        """
        Ask PayFast whether the notification is genuine.

        The raw body is sent unmodified so the bytes PayFast checks are
        the bytes it sent.

        Args:
            notification: Notification carrying the original request body

        Returns:
            CONFIRMED or GATEWAY_REJECTED
        """
        if not self._session:
            await self.start()

        headers = {'Content-Type': notification.content_type}

        try:
            async with self._session.post(
                self.validate_url,
                data=notification.raw_body,
                headers=headers
            ) as response:
                body = await response.read()

                if not 200 <= response.status < 300:
                    logger.warning(
                        f"PayFast validation returned HTTP {response.status} "
                        f"for {notification.summary()}"
                    )
                    return ValidationResult.GATEWAY_REJECTED

        except aiohttp.ClientError as e:
            logger.error(f"Network error validating ITN with PayFast: {e}")
            return ValidationResult.GATEWAY_REJECTED
        except asyncio.TimeoutError:
            logger.error(f"Timeout validating ITN with PayFast at {self.validate_url}")
            return ValidationResult.GATEWAY_REJECTED

        # Compared as bytes; the reply is not guaranteed to be UTF-8
        verdict = body.strip()
        logger.info(f"PayFast validation: {verdict[:32]!r} for {notification.summary()}")

        if verdict == VALID_RESPONSE:
            return ValidationResult.CONFIRMED
        return ValidationResult.GATEWAY_REJECTED
