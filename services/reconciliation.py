"""
Payment Reconciliation Service.

Applies verified ITNs, browser returns and manual overrides to
application records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from database.db import Database
from models.application import ApplicationRecord, PaymentUpdate
from models.notification import Notification
from .exceptions import ReferenceMissing, StorageFailure

logger = logging.getLogger(__name__)

RETURN_SUCCESS = 'success'
RETURN_CANCEL = 'cancel'


@dataclass
class ReconciliationResult:
    """Outcome of applying one notification."""
    application_id: str
    status: str
    marked_paid: bool
    updated: bool


class ReconciliationStore:
    """
    Race-safe writer for application payment state.

    Rules:
    - COMPLETE sets ``paid`` and the payment metadata in one statement;
      repeating it yields the same row.
    - Any other status records metadata only and never touches ``paid``.
    - A browser cancel may clear ``paid`` only while it is still false.

    Database errors are raised as StorageFailure so the caller can answer
    with a 5xx and let PayFast redeliver.
    """

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def resolve_reference(notification: Notification) -> str:
        """
        Pick the application id from a notification.

        Raises:
            ReferenceMissing: If neither m_payment_id nor custom_str1 is set
        """
        reference = notification.correlation_id
        if not reference:
            raise ReferenceMissing("Missing row id: expected m_payment_id or custom_str1")
        return reference

    async def apply(self, notification: Notification) -> ReconciliationResult:
        """
        Apply a verified notification.

        An unknown application id is not an error: the result comes back
        with ``updated=False``.

        Args:
            notification: Notification that passed signature and PayFast validation

        Returns:
            ReconciliationResult describing the write
        """
        application_id = self.resolve_reference(notification)
        update = PaymentUpdate.from_notification(application_id, notification)

        try:
            rows = await self.db.update_application_payment(
                application_id=update.application_id,
                payment_method=update.payment_method,
                payment_reference=update.payment_reference,
                payment_token=update.payment_token,
                payment_date=update.payment_date,
                notes=update.notes,
                mark_paid=update.terminal
            )
        except Exception as e:
            logger.error(f"Failed to record ITN for application {application_id}: {e}")
            raise StorageFailure(str(e)) from e

        return ReconciliationResult(
            application_id=application_id,
            status=update.status,
            marked_paid=update.terminal and rows > 0,
            updated=rows > 0
        )

    async def record_return(self, application_id: str, outcome: str) -> bool:
        """
        Record the payer's browser returning from PayFast.

        Only applications that are not yet paid are touched. A success
        return does not set ``paid``; only the ITN is authoritative.

        Args:
            application_id: Application id from the return URL
            outcome: 'success' or 'cancel'

        Returns:
            True if a row was updated
        """
        if outcome not in (RETURN_SUCCESS, RETURN_CANCEL):
            raise ValueError(f"Unknown return outcome: {outcome}")

        now = datetime.now(timezone.utc)
        if outcome == RETURN_CANCEL:
            notes = f"Payment CANCELLED via cancel_url @ {now.isoformat()}"
        else:
            notes = f"Returned via return_url @ {now.isoformat()}, awaiting ITN"

        try:
            rows = await self.db.annotate_unpaid_application(
                application_id=application_id,
                payment_date=now,
                notes=notes,
                cancel=outcome == RETURN_CANCEL
            )
        except Exception as e:
            logger.error(f"Failed to record {outcome} return for {application_id}: {e}")
            raise StorageFailure(str(e)) from e

        if rows == 0:
            logger.info(f"Return ({outcome}) for {application_id} left unchanged (paid or unknown)")
        return rows > 0

    async def mark_paid(self, application_id: str) -> Optional[ApplicationRecord]:
        """
        Manual admin override.

        Returns:
            The updated record, or None if the application does not exist
        """
        try:
            rows = await self.db.mark_application_paid(application_id)
            if rows == 0:
                return None
            row = await self.db.get_application(application_id)
        except Exception as e:
            logger.error(f"Failed to mark application {application_id} paid: {e}")
            raise StorageFailure(str(e)) from e

        logger.info(f"Application {application_id} manually marked paid")
        return ApplicationRecord.from_dict(row) if row else None

    async def get(self, application_id: str) -> Optional[ApplicationRecord]:
        """Fetch one application record."""
        try:
            row = await self.db.get_application(application_id)
        except Exception as e:
            raise StorageFailure(str(e)) from e
        return ApplicationRecord.from_dict(row) if row else None
