"""
Unit tests for notification and application models.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from models.application import ApplicationRecord, PaymentUpdate
from models.notification import Notification
from services.checks import build_checks, run_checks
from services.exceptions import AmountMismatch, MerchantMismatch
from config import ITNConfig


class TestNotification:
    """Tests for Notification decoding and accessors."""

    def test_from_body_decodes_form(self):
        """Test decoding a form-encoded body."""
        body = b'payment_status=COMPLETE&item_name=Test+Item&email_address=a%40b.co&custom_str2='
        notification = Notification.from_body(body)

        assert notification.fields == {
            'payment_status': 'COMPLETE',
            'item_name': 'Test Item',
            'email_address': 'a@b.co',
            'custom_str2': '',
        }
        assert notification.raw_body == body
        assert notification.content_type == 'application/x-www-form-urlencoded'

    def test_from_body_keeps_field_order(self):
        """Test decoded fields keep their order."""
        notification = Notification.from_body(b'z=1&a=2&m=3')
        assert list(notification.fields) == ['z', 'a', 'm']

    def test_status_is_upper_cased(self):
        """Test payment status is upper-cased."""
        notification = Notification(fields={'payment_status': 'complete'})
        assert notification.payment_status == 'COMPLETE'
        assert notification.is_complete

    def test_missing_fields_are_empty(self):
        """Test accessors on an empty notification."""
        notification = Notification(fields={})
        assert notification.signature == ''
        assert notification.payment_status == ''
        assert notification.correlation_id is None
        assert not notification.is_complete

    def test_correlation_id_is_stripped(self):
        """Test the correlation id is stripped."""
        notification = Notification(fields={'m_payment_id': ' app-7 '})
        assert notification.correlation_id == 'app-7'


class TestPaymentUpdate:
    """Tests for PaymentUpdate."""

    def test_from_complete_notification(self):
        """Test building an update from a COMPLETE notification."""
        notification = Notification(fields={
            'payment_status': 'COMPLETE',
            'pf_payment_id': '1089250',
            'payment_method': 'eft',
            'token': 'tok',
            'amount_gross': '150.00',
            'amount_fee': '-5.25',
            'amount_net': '144.75',
        })
        update = PaymentUpdate.from_notification('app-001', notification)

        assert update.terminal
        assert update.payment_reference == '1089250'
        assert update.payment_method == 'eft'
        assert update.payment_token == 'tok'
        assert update.notes == 'ITN status=COMPLETE gross=150.00 fee=-5.25 net=144.75'
        assert update.payment_date.tzinfo is not None

    def test_non_terminal_status(self):
        """Test building an update from a PENDING notification."""
        update = PaymentUpdate.from_notification(
            'app-001',
            Notification(fields={'payment_status': 'PENDING'})
        )
        assert not update.terminal
        assert update.payment_reference is None
        assert update.notes == 'ITN status=PENDING gross= fee= net='


class TestApplicationRecord:
    """Tests for ApplicationRecord."""

    def test_from_sqlite_row(self):
        """Test loading a record from an SQLite row."""
        record = ApplicationRecord.from_dict({
            'id': 'app-001',
            'paid': 1,
            'payfast_method': 'cc',
            'payfast_token': 'tok',
            'payment_reference': '1089250',
            'payment_date': '2026-03-01T10:00:00+00:00',
            'notes': 'ITN status=COMPLETE',
        })

        assert record.paid is True
        assert record.payment_method == 'cc'
        assert record.payment_token == 'tok'
        assert record.payment_date == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)

    def test_to_dict(self):
        """Test serializing a record."""
        record = ApplicationRecord(id='app-001', paid=False)
        data = record.to_dict()
        assert data['id'] == 'app-001'
        assert data['paid'] is False
        assert data['payment_date'] is None


class TestVerificationChecks:
    """Tests for the optional merchant and amount checks."""

    def test_no_checks_by_default(self):
        """Test no checks are built without configuration."""
        assert build_checks(ITNConfig()) == []

    def test_merchant_check(self):
        """Test the merchant id check."""
        checks = build_checks(ITNConfig(merchant_id='10000100'))
        assert [c.name for c in checks] == ['merchant_id']

        run_checks(checks, Notification(fields={'merchant_id': '10000100'}))
        with pytest.raises(MerchantMismatch):
            run_checks(checks, Notification(fields={'merchant_id': '99999999'}))

    @pytest.mark.parametrize('gross', ['150.00', '150', '150.01', '149.99'])
    def test_amount_within_tolerance(self, gross):
        """Test amounts within a cent of the expected amount."""
        checks = build_checks(ITNConfig(expected_amount=Decimal('150.00')))
        run_checks(checks, Notification(fields={'amount_gross': gross}))

    @pytest.mark.parametrize('gross', ['1.00', '150.02', '', 'abc'])
    def test_amount_mismatch(self, gross):
        """Test amounts outside the tolerance or unparseable."""
        checks = build_checks(ITNConfig(expected_amount=Decimal('150.00')))
        with pytest.raises(AmountMismatch):
            run_checks(checks, Notification(fields={'amount_gross': gross}))

    def test_checks_run_in_order(self):
        """Test the merchant check runs before the amount check."""
        checks = build_checks(ITNConfig(merchant_id='10000100', expected_amount=Decimal('150')))
        assert [c.name for c in checks] == ['merchant_id', 'amount']

        with pytest.raises(MerchantMismatch):
            run_checks(checks, Notification(fields={'merchant_id': 'x', 'amount_gross': 'y'}))
