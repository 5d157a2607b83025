"""
Configuration module for Registration Payment Notifications service.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

PAYFAST_SANDBOX_HOST = 'sandbox.payfast.co.za'
PAYFAST_LIVE_HOST = 'www.payfast.co.za'
PAYFAST_VALIDATE_PATH = '/eng/query/validate'


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass
class ITNConfig:
    """
    PayFast Instant Transaction Notification settings.

    Passed explicitly to the ITN pipeline so tests can swap in
    alternate passphrases or hosts without touching the environment.
    """
    passphrase: str = ''
    sandbox: bool = False
    validate_host: Optional[str] = None
    validate_path: str = PAYFAST_VALIDATE_PATH
    timeout: float = 5.0
    merchant_id: Optional[str] = None
    expected_amount: Optional[Decimal] = None

    @property
    def host(self) -> str:
        """Validation host, honouring an explicit override."""
        if self.validate_host:
            return self.validate_host
        return PAYFAST_SANDBOX_HOST if self.sandbox else PAYFAST_LIVE_HOST

    @property
    def validate_url(self) -> str:
        """Full server-to-server validation URL."""
        if self.host.startswith(('http://', 'https://')):
            return f"{self.host}{self.validate_path}"
        return f"https://{self.host}{self.validate_path}"


@dataclass
class AdminConfig:
    """Shared secret for the manual mark-paid action."""
    password: str


@dataclass
class APIConfig:
    """API server configuration."""
    host: str
    port: int
    return_redirect_url: str = '/'


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass
class ServiceConfig:
    """Service-level configuration."""
    name: str
    shutdown_timeout: float


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_amount(value: Optional[str]) -> Optional[Decimal]:
    if not value or not value.strip():
        return None
    try:
        return Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"PAYFAST_EXPECTED_AMOUNT is not a number: {value!r}")


class Config:
    """
    Main configuration class that aggregates all config sections.

    Usage:
        from config import config

        print(config.itn.validate_url)
        print(config.database.url)
    """

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load all configuration from environment variables."""

        # Database configuration
        self.database = DatabaseConfig(
            url=os.getenv('DATABASE_URL', 'sqlite:///./registrations.db')
        )

        # PayFast ITN configuration
        self.itn = ITNConfig(
            passphrase=os.getenv('PAYFAST_PASSPHRASE', ''),
            sandbox=_parse_bool(os.getenv('PAYFAST_SANDBOX', 'false')),
            validate_host=os.getenv('PAYFAST_VALIDATE_HOST') or None,
            validate_path=os.getenv('PAYFAST_VALIDATE_PATH', PAYFAST_VALIDATE_PATH),
            timeout=float(os.getenv('PAYFAST_VALIDATE_TIMEOUT', '5')),
            merchant_id=os.getenv('PAYFAST_MERCHANT_ID') or None,
            expected_amount=_parse_amount(os.getenv('PAYFAST_EXPECTED_AMOUNT'))
        )

        # Admin configuration
        self.admin = AdminConfig(
            password=os.getenv('ADMIN_PASSWORD', '')
        )

        # API configuration
        self.api = APIConfig(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '8000')),
            return_redirect_url=os.getenv('RETURN_REDIRECT_URL', '/')
        )

        # Logging configuration
        self.logging = LoggingConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            file=os.getenv('LOG_FILE')
        )

        # Service configuration
        self.service = ServiceConfig(
            name=os.getenv('SERVICE_NAME', 'RegistrationPaymentNotifications'),
            shutdown_timeout=float(os.getenv('SHUTDOWN_TIMEOUT', '30'))
        )

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.database.url:
            errors.append("DATABASE_URL is required")

        if self.itn.timeout <= 0:
            errors.append("PAYFAST_VALIDATE_TIMEOUT must be positive")

        if not self.itn.validate_path.startswith('/'):
            errors.append("PAYFAST_VALIDATE_PATH must start with '/'")

        if self.service.shutdown_timeout <= 0:
            errors.append("SHUTDOWN_TIMEOUT must be positive")

        return errors


# Global configuration instance
config = Config()
