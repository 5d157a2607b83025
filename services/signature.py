"""
ITN Signature Service.

Rebuilds the parameter string PayFast signs and checks the MD5
signature carried in the notification.
"""

import hashlib
import logging
from typing import Mapping, Optional
from urllib.parse import quote

from models.notification import Notification, ValidationResult

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = 'signature'

# Characters a URI component leaves unescaped besides [A-Za-z0-9_.-~]
_URI_COMPONENT_SAFE = "!*'()"


def encode_value(value: Optional[str]) -> str:
    """Percent-encode a value as a URI component, with spaces as '+'."""
    return quote(value or '', safe=_URI_COMPONENT_SAFE).replace('%20', '+')


def build_signature_string(
    data: Mapping[str, Optional[str]],
    passphrase: Optional[str] = None
) -> str:
    """
    Build the exact string PayFast signed.

    Fields are sorted by name, ``signature`` is left out and missing
    values are emitted as empty strings. A non-blank passphrase is
    appended last.

    Args:
        data: Notification fields
        passphrase: Merchant passphrase, if one is set on the account

    Returns:
        Canonical ``name=value&...`` string
    """
    pairs = [
        f"{name}={encode_value(data[name])}"
        for name in sorted(data)
        if name != SIGNATURE_FIELD
    ]

    result = '&'.join(pairs)
    if passphrase and passphrase.strip():
        result += f"&passphrase={encode_value(passphrase.strip())}"
    return result


def generate_signature(
    data: Mapping[str, Optional[str]],
    passphrase: Optional[str] = None
) -> str:
    """
    Compute the signature PayFast expects for a field set.

    Returns:
        Lowercase hex MD5 of the canonical string
    """
    canonical = build_signature_string(data, passphrase)
    return hashlib.md5(canonical.encode('utf-8')).hexdigest()


class SignatureVerifier:
    """Local signature check for inbound notifications."""

    def __init__(self, passphrase: Optional[str] = None):
        """
        Initialize the verifier.

        Args:
            passphrase: Merchant passphrase, empty when none is configured
        """
        self.passphrase = passphrase or ''

    def verify(self, notification: Notification) -> ValidationResult:
        """
        Check the notification's signature.

        A missing signature always fails.
        """
        received = notification.signature.strip().lower()
        if not received:
            logger.warning(f"ITN without signature: {notification.summary()}")
            return ValidationResult.SIGNATURE_INVALID

        expected = generate_signature(notification.fields, self.passphrase)
        if received != expected:
            logger.warning(
                f"ITN signature mismatch: {notification.summary()} "
                f"got={received[:8]}... expected={expected[:8]}... "
                f"passphrase_set={bool(self.passphrase.strip())}"
            )
            return ValidationResult.SIGNATURE_INVALID

        return ValidationResult.CONFIRMED
