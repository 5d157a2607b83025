"""
Optional ITN verification checks.

Each check is a named predicate over the notification, evaluated after
the signature and before PayFast validation. New rules are added to
``build_checks`` without touching the controller.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Type

from config import ITNConfig
from models.notification import Notification
from .exceptions import AmountMismatch, ITNRejected, MerchantMismatch

logger = logging.getLogger(__name__)

# PayFast's own tolerance when comparing amounts
AMOUNT_TOLERANCE = Decimal('0.01')


@dataclass
class VerificationCheck:
    """A single toggle-able guard."""
    name: str
    condition: Callable[[Notification], bool]
    error: Type[ITNRejected]

    def run(self, notification: Notification) -> None:
        """
        Raises:
            ITNRejected: If the condition does not hold
        """
        if not self.condition(notification):
            logger.warning(f"ITN check '{self.name}' failed: {notification.summary()}")
            raise self.error(f"{self.error.reason} ({self.name})")


def merchant_matches(merchant_id: str) -> Callable[[Notification], bool]:
    def condition(notification: Notification) -> bool:
        return notification.merchant_id.strip() == merchant_id.strip()
    return condition


def amount_matches(expected: Decimal) -> Callable[[Notification], bool]:
    def condition(notification: Notification) -> bool:
        try:
            gross = Decimal(notification.amount_gross.strip())
        except InvalidOperation:
            return False
        return abs(gross - expected) <= AMOUNT_TOLERANCE
    return condition


def build_checks(itn_config: ITNConfig) -> List[VerificationCheck]:
    """
    Build the enabled checks for a configuration.

    A check is enabled when its expected value is configured.
    """
    checks = []

    if itn_config.merchant_id:
        checks.append(VerificationCheck(
            name='merchant_id',
            condition=merchant_matches(itn_config.merchant_id),
            error=MerchantMismatch
        ))

    if itn_config.expected_amount is not None:
        checks.append(VerificationCheck(
            name='amount',
            condition=amount_matches(itn_config.expected_amount),
            error=AmountMismatch
        ))

    return checks


def run_checks(checks: List[VerificationCheck], notification: Notification) -> None:
    """Run checks in order, stopping at the first failure."""
    for check in checks:
        check.run(notification)
