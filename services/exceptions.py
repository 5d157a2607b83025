"""
ITN pipeline errors.

Rejections map to HTTP 400 and are final; storage failures map to
HTTP 500 so PayFast redelivers the notification later.
"""


class ITNError(Exception):
    """Base class for ITN pipeline errors."""


class ITNRejected(ITNError):
    """A notification that must not be processed. Not retryable."""

    reason = "Rejected"

    def __init__(self, detail: str = ''):
        super().__init__(detail or self.reason)
        self.detail = detail or self.reason


class AuthenticationFailure(ITNRejected):
    """Signature missing or does not match."""
    reason = "Invalid signature"


class AttestationFailure(ITNRejected):
    """PayFast did not confirm the notification, or could not be reached."""
    reason = "PayFast validation failed"


class ReferenceMissing(ITNRejected):
    """Neither m_payment_id nor custom_str1 carries an application id."""
    reason = "Missing payment reference"


class MerchantMismatch(ITNRejected):
    """Notification addressed to a different merchant account."""
    reason = "Merchant mismatch"


class AmountMismatch(ITNRejected):
    """Gross amount differs from the expected registration fee."""
    reason = "Amount mismatch"


class StorageFailure(ITNError):
    """Database unreachable or rejected the write."""
