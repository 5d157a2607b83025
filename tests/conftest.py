"""Shared fixtures for the ITN pipeline tests."""

from typing import Callable, Dict
from urllib.parse import urlencode

import pytest

from config import ITNConfig
from database.db import Database
from models.notification import Notification
from services.signature import generate_signature

PASSPHRASE = 'jt7NOE43FZPn'


@pytest.fixture
async def db(tmp_path):
    """SQLite database with the application schema."""
    database = Database(f"sqlite:///{tmp_path / 'registrations.db'}")
    await database.connect()
    await database.init_schema()
    yield database
    await database.disconnect()


@pytest.fixture
def itn_config() -> ITNConfig:
    return ITNConfig(passphrase=PASSPHRASE, sandbox=True)


@pytest.fixture
def make_itn() -> Callable[..., Dict[str, str]]:
    """
    Build a signed ITN field set.

    Keyword arguments override fields; a value of None drops the field.
    Pass ``passphrase=`` to sign with a different passphrase.
    """
    def factory(passphrase: str = PASSPHRASE, **overrides) -> Dict[str, str]:
        fields = {
            'm_payment_id': 'app-001',
            'pf_payment_id': '1089250',
            'payment_status': 'COMPLETE',
            'item_name': 'Mentorship Application',
            'amount_gross': '150.00',
            'amount_fee': '-5.25',
            'amount_net': '144.75',
            'custom_str1': 'app-001',
            'merchant_id': '10000100',
            'payment_method': 'cc',
            'token': 'dc0521d3-55fe-269b-fa00-b647310d760f',
        }
        for name, value in overrides.items():
            if value is None:
                fields.pop(name, None)
            else:
                fields[name] = value
        fields['signature'] = generate_signature(fields, passphrase)
        return fields

    return factory


@pytest.fixture
def to_notification() -> Callable[[Dict[str, str]], Notification]:
    """Encode fields as a form body and decode them back, as the server does."""
    def convert(fields: Dict[str, str]) -> Notification:
        return Notification.from_body(urlencode(fields).encode('utf-8'))

    return convert
