"""Database module for Registration Payment Notifications."""

from .db import Database, close_db, get_db

__all__ = ['Database', 'close_db', 'get_db']
