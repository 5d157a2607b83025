"""Data models for Registration Payment Notifications."""

from .application import ApplicationRecord, PaymentUpdate
from .notification import Notification, ValidationResult

__all__ = ['ApplicationRecord', 'PaymentUpdate', 'Notification', 'ValidationResult']
