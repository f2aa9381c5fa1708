"""Notification adapters."""

from import_handler.adapters.notifications.email_notifier import EmailNotifier

__all__ = ["EmailNotifier"]
