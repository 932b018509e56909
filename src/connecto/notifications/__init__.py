"""Notifications — per-user records derived from deal transition events."""

from connecto.notifications.dispatcher import NotificationDispatcher, compose

__all__ = ["NotificationDispatcher", "compose"]
