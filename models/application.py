"""
Application data model.

Represents a registration application and the payment metadata
derived from an ITN.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .notification import Notification


def _parse_timestamp(value: Any) -> Optional[datetime]:
    # SQLite hands timestamps back as ISO strings, PostgreSQL as datetimes
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class ApplicationRecord:
    """
    A persisted registration application.

    Only the payment columns are owned by this service; the rest is
    written by the registration form.
    """

    id: str
    paid: bool = False
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_token: Optional[str] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationRecord':
        """Create from a database row keyed by column name."""
        return cls(
            id=str(data['id']),
            paid=bool(data.get('paid')),
            payment_method=data.get('payfast_method'),
            payment_reference=data.get('payment_reference'),
            payment_token=data.get('payfast_token'),
            payment_date=_parse_timestamp(data.get('payment_date')),
            notes=data.get('notes'),
            full_name=data.get('full_name'),
            email=data.get('email')
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            'id': self.id,
            'paid': self.paid,
            'payment_method': self.payment_method,
            'payment_reference': self.payment_reference,
            'payment_token': self.payment_token,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'notes': self.notes,
            'full_name': self.full_name,
            'email': self.email
        }


@dataclass
class PaymentUpdate:
    """
    Payment metadata to write for one ITN.

    ``terminal`` is True only for a COMPLETE status; it is the single
    signal allowed to set ``paid``.
    """

    application_id: str
    status: str
    terminal: bool
    payment_method: Optional[str]
    payment_reference: Optional[str]
    payment_token: Optional[str]
    notes: str
    payment_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_notification(
        cls,
        application_id: str,
        notification: Notification
    ) -> 'PaymentUpdate':
        status = notification.payment_status
        return cls(
            application_id=application_id,
            status=status,
            terminal=notification.is_complete,
            payment_method=notification.payment_method or None,
            payment_reference=notification.pf_payment_id or None,
            payment_token=notification.token or None,
            notes=(
                f"ITN status={status} "
                f"gross={notification.amount_gross} "
                f"fee={notification.amount_fee} "
                f"net={notification.amount_net}"
            )
        )
