"""Kernel services (flush-only, caller owns the transaction)."""

from treasury_kernel.services.base import BaseService
from treasury_kernel.services.notification_service import NotificationService

__all__ = ["BaseService", "NotificationService"]
