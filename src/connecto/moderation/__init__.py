"""Moderation — suspension gate, user reports, review flags, admin audit log."""

from connecto.moderation.guard import ModerationGuard

__all__ = ["ModerationGuard"]
