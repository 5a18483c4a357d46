"""Collaborator adapters used by the approval engine."""

from procureflow.services.notifications import NotificationService, render_notification
from procureflow.services.documents import HttpDocumentGenerator, HttpEmailSender

__all__ = [
    "NotificationService",
    "render_notification",
    "HttpDocumentGenerator",
    "HttpEmailSender",
]
