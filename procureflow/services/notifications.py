"""In-app notification delivery.

Handles:
- Rendering notification titles, messages and links per template key
- Writing one Notification row per recipient

Runs on side-effect worker threads, so it opens its own session for every
call instead of sharing the request's session.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional
from uuid import UUID

from jinja2 import Template
from sqlalchemy.orm import Session

from procureflow.core.config import get_settings
from procureflow.db.models import Notification
from procureflow.db.session import SessionLocal

logger = logging.getLogger(__name__)


PO_LINK = "/pos/{{ document_id }}"
INVOICE_LINK = "/invoices/{{ document_id }}"

NOTIFICATION_TEMPLATES: Dict[str, Dict[str, str]] = {
    "po_approval_request": {
        "title": "PO Awaiting Your Approval",
        "message": "PO {{ reference }} ({{ amount }}) is waiting for your approval",
        "link": PO_LINK,
    },
    "po_pending_ceo_approval": {
        "title": "High-Value PO Requires CEO Approval",
        "message": "PO {{ reference }} ({{ amount }}) requires your approval",
        "link": PO_LINK,
    },
    "po_approved": {
        "title": "PO Approved",
        "message": "Your Purchase Order {{ reference }} has been approved",
        "link": PO_LINK,
    },
    "po_approved_for_invoice": {
        "title": "PO Ready for Invoice",
        "message": "PO {{ reference }} approved. Ready for invoice matching.",
        "link": "/invoices",
    },
    "po_rejected": {
        "title": "PO Rejected",
        "message": "Your Purchase Order {{ reference }} has been rejected"
                   "{% if comment %}: {{ comment }}{% endif %}",
        "link": PO_LINK,
    },
    "invoice_needs_approval": {
        "title": "Invoice Awaiting Approval",
        "message": "Invoice {{ reference }} ({{ amount }}) needs MD approval",
        "link": INVOICE_LINK,
    },
    "invoice_approved": {
        "title": "Invoice Approved for Payment",
        "message": "Invoice {{ reference }} ({{ amount }}) has been approved for payment",
        "link": INVOICE_LINK,
    },
    "invoice_rejected": {
        "title": "Invoice Rejected",
        "message": "Invoice {{ reference }} has been rejected"
                   "{% if comment %}: {{ comment }}{% endif %}",
        "link": INVOICE_LINK,
    },
    "delegation_expired": {
        "title": "Approval Delegation Ended",
        "message": "Your delegated approval authority"
                   "{% if delegator_name %} for {{ delegator_name }}{% endif %} has expired",
        "link": "/delegations",
    },
}


def render_notification(template_key: str, context: Dict[str, Any]) -> Dict[str, str]:
    """
    Render the title, message and link for a template key.

    Raises:
        KeyError: If no template exists for the key
    """
    templates = NOTIFICATION_TEMPLATES[template_key]
    return {name: Template(source).render(**context) for name, source in templates.items()}


class NotificationService:
    """Writes in-app notifications for the approval engine."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        app_base_url: Optional[str] = None,
    ):
        """
        Initialize the notification service.

        Args:
            session_factory: Opens a new session per notify call
            app_base_url: Prefix for notification links
        """
        self.session_factory = session_factory
        self.app_base_url = (app_base_url if app_base_url is not None else get_settings().app_base_url).rstrip("/")

    def notify(self, recipient_ids: Iterable[UUID], template_key: str, context: Dict[str, Any]) -> int:
        """
        Notify each recipient once.

        Args:
            recipient_ids: Users to notify
            template_key: Key into NOTIFICATION_TEMPLATES
            context: Template variables; must include org_id

        Returns:
            Number of notifications written
        """
        rendered = render_notification(template_key, context)
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            return 0

        org_id = UUID(str(context["org_id"]))
        document_id = context.get("document_id")
        document_type = context.get("document_type")

        db = self.session_factory()
        try:
            for user_id in recipients:
                db.add(Notification(
                    user_id=UUID(str(user_id)),
                    org_id=org_id,
                    type=template_key,
                    title=rendered["title"],
                    message=rendered["message"],
                    link=f"{self.app_base_url}{rendered['link']}",
                    related_po_id=UUID(document_id) if document_id and document_type == "PO" else None,
                    related_invoice_id=UUID(document_id) if document_id and document_type == "INVOICE" else None,
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.debug(f"Sent {template_key} notification to {len(recipients)} user(s)")
        return len(recipients)
