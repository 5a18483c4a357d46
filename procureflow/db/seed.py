"""Database seeding for ProcureFlow.

Creates organisations and applies their workflow configuration files.
"""

import logging
import uuid
from typing import Dict

from sqlalchemy import and_
from sqlalchemy.orm import Session

from procureflow.common.config import OrganisationConfig, ThresholdConfig, WorkflowConfig
from procureflow.db.models import ApprovalWorkflow, Organization, WorkflowSettings, WorkflowStep

logger = logging.getLogger(__name__)


def seed_organization(db: Session, name: str, slug: str) -> Organization:
    """
    Create an organisation, or return the existing one with the same slug.

    Args:
        db: Database session
        name: Organisation name
        slug: URL-friendly slug

    Returns:
        The organisation
    """
    existing = db.query(Organization).filter(Organization.slug == slug).first()
    if existing:
        return existing

    org = Organization(id=uuid.uuid4(), name=name, slug=slug)
    db.add(org)
    db.flush()
    return org


def seed_workflow_settings(db: Session, org_id: uuid.UUID, thresholds: ThresholdConfig) -> WorkflowSettings:
    """Create or overwrite an organisation's approval thresholds."""
    settings = db.query(WorkflowSettings).filter(WorkflowSettings.org_id == org_id).first()
    if settings is None:
        settings = WorkflowSettings(id=uuid.uuid4(), org_id=org_id)
        db.add(settings)

    settings.use_custom_workflows = thresholds.use_custom_workflows
    settings.auto_approve_below_amount = thresholds.auto_approve_below_amount
    settings.require_ceo_above_amount = thresholds.require_ceo_above_amount
    db.flush()
    return settings


def seed_workflow(db: Session, org_id: uuid.UUID, config: WorkflowConfig) -> ApprovalWorkflow:
    """
    Create a workflow, or replace the steps of the one with the same name.

    A workflow marked default takes the default flag from every other
    workflow of its document type.
    """
    workflow = db.query(ApprovalWorkflow).filter(
        and_(
            ApprovalWorkflow.org_id == org_id,
            ApprovalWorkflow.name == config.name,
            ApprovalWorkflow.document_type == config.document_type.value,
        )
    ).first()

    if workflow is None:
        workflow = ApprovalWorkflow(
            id=uuid.uuid4(),
            org_id=org_id,
            name=config.name,
            document_type=config.document_type.value,
        )
        db.add(workflow)
    else:
        workflow.steps.clear()
        db.flush()

    workflow.is_active = config.is_active
    workflow.is_default = config.is_default

    for step in config.steps:
        workflow.steps.append(
            WorkflowStep(
                id=uuid.uuid4(),
                step_order=step.step_order,
                approver_role=step.approver_role.value,
                min_amount=step.min_amount,
                max_amount=step.max_amount,
                skip_if_below_amount=step.skip_if_below_amount,
                is_required=step.is_required,
            )
        )
    db.flush()

    if config.is_default:
        db.query(ApprovalWorkflow).filter(
            and_(
                ApprovalWorkflow.org_id == org_id,
                ApprovalWorkflow.document_type == config.document_type.value,
                ApprovalWorkflow.id != workflow.id,
            )
        ).update({ApprovalWorkflow.is_default: False}, synchronize_session="fetch")

    return workflow


def seed_workflow_config(db: Session, config: OrganisationConfig) -> Dict[str, ApprovalWorkflow]:
    """
    Apply a parsed organisation configuration.

    Re-running with the same configuration leaves the database unchanged.
    The caller commits.

    Args:
        db: Database session
        config: Parsed organisation configuration

    Returns:
        Dict mapping workflow name to ApprovalWorkflow
    """
    org = seed_organization(db, config.name, config.slug)
    seed_workflow_settings(db, org.id, config.thresholds)

    workflows = {}
    for workflow_config in config.workflows:
        workflows[workflow_config.name] = seed_workflow(db, org.id, workflow_config)

    logger.info(f"Seeded workflow configuration for {config.slug}: {len(workflows)} workflows")
    return workflows
