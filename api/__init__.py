"""API module for Registration Payment Notifications."""

from .itn_api import ITNController, create_app

__all__ = ['ITNController', 'create_app']
