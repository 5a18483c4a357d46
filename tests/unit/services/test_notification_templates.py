"""Tests for notification rendering."""

import pytest

from procureflow.services.notifications import NOTIFICATION_TEMPLATES, render_notification


CONTEXT = {
    "org_id": "6f1c2f4e-1111-4c1e-9d7e-000000000001",
    "document_id": "6f1c2f4e-2222-4c1e-9d7e-000000000002",
    "document_type": "PO",
    "reference": "PO-0042",
    "amount": "20,000.00",
    "comment": None,
}


class TestRenderNotification:
    """Test template rendering."""

    def test_approval_request(self):
        rendered = render_notification("po_approval_request", CONTEXT)

        assert rendered["title"] == "PO Awaiting Your Approval"
        assert rendered["message"] == "PO PO-0042 (20,000.00) is waiting for your approval"
        assert rendered["link"] == f"/pos/{CONTEXT['document_id']}"

    def test_rejection_with_comment(self):
        """Test the rejection reason is appended when present."""
        rendered = render_notification("po_rejected", dict(CONTEXT, comment="Over budget"))
        assert rendered["message"].endswith("has been rejected: Over budget")

    def test_rejection_without_comment(self):
        rendered = render_notification("po_rejected", CONTEXT)
        assert rendered["message"].endswith("has been rejected")

    def test_delegation_expired(self):
        rendered = render_notification("delegation_expired", {"delegator_name": "Morgan MD"})
        assert "for Morgan MD" in rendered["message"]
        assert rendered["link"] == "/delegations"

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            render_notification("po_lost", CONTEXT)

    def test_every_template_renders(self):
        """Test each template has a title, message and link."""
        for key in NOTIFICATION_TEMPLATES:
            rendered = render_notification(key, CONTEXT)
            assert set(rendered) == {"title", "message", "link"}
            assert rendered["title"]
