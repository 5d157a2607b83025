"""
Tests for ReconciliationStore against a real SQLite database.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from database.db import Database
from models.notification import Notification
from services.exceptions import ReferenceMissing, StorageFailure
from services.reconciliation import ReconciliationStore


@pytest.fixture
async def store(db):
    await db.create_application('app-001', full_name='Thandi Mokoena', email='thandi@example.com')
    return ReconciliationStore(db)


class TestResolveReference:
    """Tests for correlation id selection."""

    def test_prefers_m_payment_id(self):
        """Test m_payment_id wins over custom_str1."""
        notification = Notification(fields={'m_payment_id': 'a', 'custom_str1': 'b'})
        assert ReconciliationStore.resolve_reference(notification) == 'a'

    def test_falls_back_to_custom_str1(self):
        """Test falling back to custom_str1 when m_payment_id is empty."""
        notification = Notification(fields={'m_payment_id': '', 'custom_str1': 'b'})
        assert ReconciliationStore.resolve_reference(notification) == 'b'

    def test_missing_reference_raises(self):
        """Test a blank reference raises ReferenceMissing."""
        notification = Notification(fields={'m_payment_id': '  ', 'payment_status': 'COMPLETE'})
        with pytest.raises(ReferenceMissing):
            ReconciliationStore.resolve_reference(notification)


class TestApply:
    """Tests for applying verified notifications."""

    async def test_complete_marks_paid_with_metadata(self, store, make_itn, to_notification):
        """Test a COMPLETE notification marks the application paid."""
        result = await store.apply(to_notification(make_itn()))

        assert result.marked_paid
        assert result.updated
        record = await store.get('app-001')
        assert record.paid is True
        assert record.payment_method == 'cc'
        assert record.payment_reference == '1089250'
        assert record.payment_token == 'dc0521d3-55fe-269b-fa00-b647310d760f'
        assert record.payment_date is not None
        assert record.notes == 'ITN status=COMPLETE gross=150.00 fee=-5.25 net=144.75'

    async def test_duplicate_complete_is_idempotent(self, store, make_itn, to_notification):
        """Test applying the same COMPLETE twice."""
        fields = make_itn()
        await store.apply(to_notification(fields))
        first = await store.get('app-001')

        await store.apply(to_notification(fields))
        second = await store.get('app-001')

        assert second.paid is True
        assert second.payment_reference == first.payment_reference
        assert second.payment_token == first.payment_token
        assert second.notes == first.notes
        assert second.payment_date >= first.payment_date

    async def test_pending_after_complete_keeps_paid(self, store, make_itn, to_notification):
        """Test a late PENDING does not undo a payment."""
        await store.apply(to_notification(make_itn()))
        result = await store.apply(to_notification(make_itn(payment_status='PENDING')))

        assert not result.marked_paid
        record = await store.get('app-001')
        assert record.paid is True
        assert record.notes.startswith('ITN status=PENDING')

    async def test_failed_after_complete_keeps_paid(self, store, make_itn, to_notification):
        """Test a late FAILED does not undo a payment."""
        await store.apply(to_notification(make_itn()))
        await store.apply(to_notification(make_itn(payment_status='FAILED')))

        assert (await store.get('app-001')).paid is True

    async def test_pending_records_metadata_without_paying(self, store, make_itn, to_notification):
        """Test PENDING records metadata only."""
        await store.apply(to_notification(make_itn(payment_status='PENDING')))

        record = await store.get('app-001')
        assert record.paid is False
        assert record.payment_reference == '1089250'
        assert record.notes.startswith('ITN status=PENDING')

    async def test_status_is_case_insensitive(self, store, make_itn, to_notification):
        """Test a lower-case status is treated as COMPLETE."""
        await store.apply(to_notification(make_itn(payment_status='complete')))
        assert (await store.get('app-001')).paid is True

    async def test_custom_str1_fallback(self, store, make_itn, to_notification):
        """Test applying a notification keyed by custom_str1."""
        fields = make_itn(m_payment_id=None, custom_str1='app-001')
        await store.apply(to_notification(fields))
        assert (await store.get('app-001')).paid is True

    async def test_missing_reference(self, store, make_itn, to_notification):
        """Test applying a notification without a reference."""
        fields = make_itn(m_payment_id=None, custom_str1=None)
        with pytest.raises(ReferenceMissing):
            await store.apply(to_notification(fields))

    async def test_unknown_application(self, store, make_itn, to_notification):
        """Test an unknown application id reports nothing updated."""
        result = await store.apply(to_notification(make_itn(m_payment_id='app-404')))
        assert not result.updated
        assert not result.marked_paid

    async def test_empty_fields_stored_as_null(self, store, make_itn, to_notification):
        """Test empty metadata fields are stored as NULL."""
        await store.apply(to_notification(make_itn(token='', payment_method=None)))

        record = await store.get('app-001')
        assert record.payment_token is None
        assert record.payment_method is None

    async def test_storage_error_is_wrapped(self, make_itn, to_notification):
        """Test database errors surface as StorageFailure."""
        db = AsyncMock(spec=Database)
        db.update_application_payment.side_effect = ConnectionError("database unavailable")
        store = ReconciliationStore(db)

        with pytest.raises(StorageFailure):
            await store.apply(to_notification(make_itn()))


class TestRecordReturn:
    """Tests for the browser return path."""

    async def test_cancel_on_unpaid(self, store):
        """Test cancelling an unpaid application."""
        assert await store.record_return('app-001', 'cancel')

        record = await store.get('app-001')
        assert record.paid is False
        assert record.notes.startswith('Payment CANCELLED')

    async def test_cancel_after_complete_changes_nothing(self, store, make_itn, to_notification):
        """Test a cancel after the ITN leaves the row untouched."""
        await store.apply(to_notification(make_itn()))
        before = await store.get('app-001')

        assert not await store.record_return('app-001', 'cancel')

        after = await store.get('app-001')
        assert after == before

    async def test_success_return_does_not_mark_paid(self, store):
        """Test a success return only annotates the application."""
        assert await store.record_return('app-001', 'success')

        record = await store.get('app-001')
        assert record.paid is False
        assert 'awaiting ITN' in record.notes

    async def test_unknown_outcome(self, store):
        """Test an unknown return outcome raises ValueError."""
        with pytest.raises(ValueError):
            await store.record_return('app-001', 'maybe')

    async def test_racing_cancel_and_complete_end_paid(self, store, make_itn, to_notification):
        """Test concurrent cancels and a COMPLETE end paid."""
        await asyncio.gather(
            store.record_return('app-001', 'cancel'),
            store.apply(to_notification(make_itn())),
            store.record_return('app-001', 'cancel'),
        )
        assert (await store.get('app-001')).paid is True


class TestMarkPaid:
    """Tests for the manual override."""

    async def test_mark_paid(self, store):
        """Test manually marking an application paid."""
        record = await store.mark_paid('app-001')
        assert record.paid is True
        assert record.full_name == 'Thandi Mokoena'

    async def test_mark_paid_unknown(self, store):
        """Test marking an unknown application paid."""
        assert await store.mark_paid('app-404') is None
