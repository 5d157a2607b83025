"""
ITN notification model.

Represents a single Instant Transaction Notification posted by PayFast.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
from urllib.parse import parse_qsl

FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'

STATUS_COMPLETE = 'COMPLETE'


class ValidationResult(str, Enum):
    """Outcome of a verification step, carried between pipeline components."""
    SIGNATURE_INVALID = "signature-invalid"
    GATEWAY_REJECTED = "gateway-rejected"
    CONFIRMED = "confirmed"


@dataclass
class Notification:
    """
    One inbound ITN.

    Attributes:
        fields: Decoded form fields in the order they were posted
        raw_body: The exact request body, replayed to PayFast for validation
        content_type: Content type of the inbound request
    """

    fields: Dict[str, str]
    raw_body: bytes = b''
    content_type: str = FORM_CONTENT_TYPE

    @classmethod
    def from_body(
        cls,
        raw_body: bytes,
        content_type: Optional[str] = None
    ) -> 'Notification':
        """
        Decode a URL-form-encoded request body.

        Blank values are kept as empty strings. When a name repeats, the
        last value wins.
        """
        text = raw_body.decode('utf-8', errors='replace')
        fields: Dict[str, str] = {}
        for name, value in parse_qsl(text, keep_blank_values=True):
            fields[name] = value

        return cls(
            fields=fields,
            raw_body=raw_body,
            content_type=content_type or FORM_CONTENT_TYPE
        )

    def get(self, name: str) -> str:
        """Field value, or empty string when absent."""
        return self.fields.get(name) or ''

    @property
    def signature(self) -> str:
        return self.get('signature')

    @property
    def payment_status(self) -> str:
        return self.get('payment_status').upper()

    @property
    def is_complete(self) -> bool:
        return self.payment_status == STATUS_COMPLETE

    @property
    def correlation_id(self) -> Optional[str]:
        """
        Application id echoed back by PayFast.

        ``m_payment_id`` is preferred; ``custom_str1`` is the fallback for
        payments started before ``m_payment_id`` was populated.
        """
        for name in ('m_payment_id', 'custom_str1'):
            value = self.get(name).strip()
            if value:
                return value
        return None

    @property
    def pf_payment_id(self) -> str:
        return self.get('pf_payment_id')

    @property
    def payment_method(self) -> str:
        return self.get('payment_method')

    @property
    def token(self) -> str:
        return self.get('token')

    @property
    def merchant_id(self) -> str:
        return self.get('merchant_id')

    @property
    def amount_gross(self) -> str:
        return self.get('amount_gross')

    @property
    def amount_fee(self) -> str:
        return self.get('amount_fee')

    @property
    def amount_net(self) -> str:
        return self.get('amount_net')

    def summary(self) -> str:
        """Short description for log lines."""
        return (
            f"status={self.payment_status or '-'} "
            f"ref={self.correlation_id or '-'} "
            f"pf_payment_id={self.pf_payment_id or '-'}"
        )
