"""Services for Registration Payment Notifications."""

from .attestation import RemoteAttestor
from .checks import VerificationCheck, build_checks
from .reconciliation import ReconciliationStore
from .signature import SignatureVerifier, build_signature_string, generate_signature

__all__ = [
    'RemoteAttestor',
    'VerificationCheck',
    'build_checks',
    'ReconciliationStore',
    'SignatureVerifier',
    'build_signature_string',
    'generate_signature',
]
