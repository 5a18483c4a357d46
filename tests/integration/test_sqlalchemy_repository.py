"""Integration tests for the SQLAlchemy approval repository."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from procureflow.core.documents import ApprovalLogEntry, DocumentType, LogAction
from procureflow.core.errors import ConflictError
from procureflow.core.rbac import Role
from procureflow.db.models import PurchaseOrder

from tests.factories import (
    create_delegation,
    create_invoice,
    create_purchase_order,
    create_user,
    create_workflow,
    create_workflow_settings,
    create_workflow_step,
)

pytestmark = pytest.mark.integration


class TestDocuments:
    """Test document loading and conditional status writes."""

    def test_load_purchase_order(self, db_session, sql_repo, acme):
        po = create_purchase_order(db_session, creator=acme.users["pm"], amount=Decimal("20000.00"))
        db_session.commit()

        document = sql_repo.load_document(DocumentType.PO, po.id)

        assert document.amount == Decimal("20000.00")
        assert document.owner_id == acme.users["pm"].id
        assert document.org_id == acme.org.id
        assert document.reference == po.po_number
        assert document.status == "DRAFT"

    def test_load_invoice(self, db_session, sql_repo, acme):
        po = create_purchase_order(db_session, creator=acme.users["pm"], status="APPROVED")
        invoice = create_invoice(
            db_session, purchase_order=po, uploader=acme.users["accounts"], amount=Decimal("1300.00")
        )
        db_session.commit()

        document = sql_repo.load_document(DocumentType.INVOICE, invoice.id)

        assert document.document_type == DocumentType.INVOICE
        assert document.owner_id == acme.users["accounts"].id
        assert document.amount == Decimal("1300.00")

    def test_conditional_update_matches_expected_status(self, db_session, sql_repo, acme):
        po = create_purchase_order(db_session, creator=acme.users["pm"], status="PENDING_MD_APPROVAL")
        db_session.commit()
        approved_at = datetime(2026, 3, 2, 9, 0)

        rows = sql_repo.conditional_update_status(
            DocumentType.PO, po.id, "PENDING_MD_APPROVAL", "APPROVED",
            {"approved_by_user_id": acme.users["md"].id, "approval_date": approved_at},
        )
        db_session.commit()

        assert rows == 1
        document = sql_repo.load_document(DocumentType.PO, po.id)
        assert document.status == "APPROVED"
        assert document.approver_id == acme.users["md"].id

    def test_conditional_update_stale_status(self, db_session, sql_repo, acme):
        """Test nothing is written when the status has moved on."""
        po = create_purchase_order(db_session, creator=acme.users["pm"], status="APPROVED")
        db_session.commit()

        rows = sql_repo.conditional_update_status(
            DocumentType.PO, po.id, "PENDING_MD_APPROVAL", "REJECTED", {"rejection_reason": "late"}
        )

        assert rows == 0
        assert sql_repo.load_document(DocumentType.PO, po.id).rejection_reason is None

    def test_unknown_field_refused(self, db_session, sql_repo, acme):
        po = create_purchase_order(db_session, creator=acme.users["pm"])
        with pytest.raises(ValueError):
            sql_repo.conditional_update_status(
                DocumentType.PO, po.id, "DRAFT", "CANCELLED", {"amount_inc_vat": 1}
            )

    def test_reads_are_fresh(self, db_session, sql_repo, acme):
        """Test a reload sees changes made behind the identity map."""
        po = create_purchase_order(db_session, creator=acme.users["pm"])
        db_session.commit()
        assert sql_repo.load_document(DocumentType.PO, po.id).status == "DRAFT"

        db_session.query(PurchaseOrder).filter(PurchaseOrder.id == po.id).update(
            {"status": "CANCELLED"}, synchronize_session=False
        )

        assert sql_repo.load_document(DocumentType.PO, po.id).status == "CANCELLED"


class TestAuditLog:
    """Test audit entries."""

    def test_append_and_list(self, db_session, sql_repo, acme):
        po = create_purchase_order(db_session, creator=acme.users["pm"])
        for minute, (from_status, to_status) in enumerate([
            ("DRAFT", "PENDING_MD_APPROVAL"), ("PENDING_MD_APPROVAL", "APPROVED"),
        ]):
            sql_repo.append_log(ApprovalLogEntry(
                document_id=po.id,
                document_type=DocumentType.PO,
                org_id=acme.org.id,
                action=LogAction.APPROVED,
                action_by_user_id=acme.users["md"].id,
                on_behalf_of_user_id=None,
                from_status=from_status,
                to_status=to_status,
                created_at=datetime(2026, 3, 2, 9, minute),
                extra_data={"transition": "approve"},
            ))
        db_session.commit()

        logs = sql_repo.list_logs(DocumentType.PO, po.id)

        assert [log.to_status for log in logs] == ["PENDING_MD_APPROVAL", "APPROVED"]
        assert all(log.id is not None for log in logs)
        assert logs[0].extra_data == {"transition": "approve"}
        assert sql_repo.list_logs(DocumentType.INVOICE, po.id) == []


class TestConfiguration:
    """Test settings and default workflow lookups."""

    def test_defaults_without_settings(self, sql_repo, acme):
        settings = sql_repo.load_settings(acme.org.id)
        assert not settings.use_custom_workflows
        assert settings.auto_approve_below_amount is None

    def test_settings(self, db_session, sql_repo, acme):
        create_workflow_settings(
            db_session, org=acme.org, use_custom_workflows=True,
            auto_approve_below_amount=Decimal("2000"), require_ceo_above_amount=Decimal("15000"),
        )
        settings = sql_repo.load_settings(acme.org.id)
        assert settings.use_custom_workflows
        assert settings.require_ceo_above_amount == Decimal("15000")

    def test_default_workflow(self, db_session, sql_repo, acme):
        workflow = create_workflow(db_session, org=acme.org, name="Standard")
        create_workflow_step(db_session, workflow=workflow, step_order=2, approver_role="MD")
        create_workflow_step(
            db_session, workflow=workflow, step_order=1, approver_role="PROPERTY_MANAGER",
            max_amount=Decimal("5000"),
        )
        create_workflow(db_session, org=acme.org, name="Draft", is_default=False)

        loaded = sql_repo.load_default_workflow(acme.org.id, DocumentType.PO)

        assert loaded.name == "Standard"
        assert sorted(step.approver_role for step in loaded.steps) == [Role.MD, Role.PROPERTY_MANAGER]
        assert sql_repo.load_default_workflow(acme.org.id, DocumentType.INVOICE) is None

    def test_inactive_default_ignored(self, db_session, sql_repo, acme):
        create_workflow(db_session, org=acme.org, is_active=False)
        assert sql_repo.load_default_workflow(acme.org.id, DocumentType.PO) is None


class TestPrincipals:
    """Test user lookups."""

    def test_find_principals(self, db_session, sql_repo, acme):
        create_user(db_session, org=acme.org, role="MD", is_active=False)

        found = sql_repo.find_principals(acme.org.id, [Role.ACCOUNTS, Role.ADMIN], exclude=[acme.users["admin"].id])
        mds = sql_repo.find_principals(acme.org.id, [Role.MD])

        assert [p.id for p in found] == [acme.users["accounts"].id]
        assert [p.id for p in mds] == [acme.users["md"].id]

    def test_load_principal(self, sql_repo, acme):
        principal = sql_repo.load_principal(acme.users["md"].id)
        assert principal.role == Role.MD
        assert principal.full_name == "Morgan MD"


class TestDelegations:
    """Test delegation persistence."""

    def test_insert_and_load(self, sql_repo, acme):
        ends_at = datetime(2026, 3, 16)
        delegation = sql_repo.insert_delegation(
            acme.users["md"].id, acme.users["pm"].id, "PO_APPROVAL", None, ends_at
        )

        assert delegation.delegate.full_name == "Pat PM"
        assert sql_repo.delegation_exists(acme.users["md"].id, acme.users["pm"].id)
        [received] = sql_repo.load_delegations_for_delegate(acme.users["pm"].id, "PO_APPROVAL")
        assert received.id == delegation.id
        assert received.ends_at == ends_at

    def test_duplicate_pair_conflicts(self, sql_repo, acme):
        """Test the unique pair constraint surfaces as a conflict."""
        sql_repo.insert_delegation(acme.users["md"].id, acme.users["pm"].id, "PO_APPROVAL")
        with pytest.raises(ConflictError) as exc_info:
            sql_repo.insert_delegation(acme.users["md"].id, acme.users["pm"].id, "PO_APPROVAL")
        assert exc_info.value.code == "duplicate_delegation"

    def test_expired_delegations(self, db_session, sql_repo, acme):
        now = datetime(2026, 3, 2, 9, 0)
        expired = create_delegation(
            db_session, delegator=acme.users["md"], delegate=acme.users["pm"], ends_at=now - timedelta(days=1)
        )
        create_delegation(
            db_session, delegator=acme.users["md"], delegate=acme.users["admin"], ends_at=now + timedelta(days=1)
        )
        create_delegation(
            db_session, delegator=acme.users["md"], delegate=acme.users["accounts"],
            ends_at=now - timedelta(days=3), is_active=False,
        )

        assert [d.id for d in sql_repo.load_expired_delegations(now)] == [expired.id]

    def test_update_and_delete(self, db_session, sql_repo, acme):
        row = create_delegation(db_session, delegator=acme.users["md"], delegate=acme.users["pm"])

        updated = sql_repo.update_delegation(row.id, is_active=False)
        assert not updated.is_active

        assert sql_repo.delete_delegation(row.id)
        assert sql_repo.load_delegation(row.id) is None
        assert not sql_repo.delete_delegation(row.id)
