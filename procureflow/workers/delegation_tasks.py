"""Celery tasks for delegation maintenance.

Provides periodic processing for:
- Switching off delegations whose window has closed
- Telling delegates their delegated authority has ended
"""

from datetime import datetime
from typing import Any, Dict, Optional
import logging

from celery import Celery, shared_task
from celery.signals import setup_logging

from procureflow.common.logger import configure_from_settings
from procureflow.core.config import get_settings
from procureflow.core.delegation import DelegationAuthority
from procureflow.db.repository import SqlAlchemyApprovalRepository
from procureflow.db.session import SessionLocal
from procureflow.services.notifications import NotificationService

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'procureflow',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_default_queue='default',
    beat_schedule={
        'expire-delegations': {
            'task': 'procureflow.workers.delegation_tasks.expire_delegations',
            'schedule': float(settings.delegation_sweep_interval),
        },
    },
)


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Install the package log handlers in worker and beat processes."""
    configure_from_settings(settings)


@shared_task(name='procureflow.workers.delegation_tasks.expire_delegations')
def expire_delegations(now: Optional[str] = None) -> Dict[str, Any]:
    """
    Deactivate expired delegations and notify their delegates.

    Args:
        now: ISO-8601 UTC timestamp to sweep at (defaults to the current time)

    Returns:
        Summary with the number and ids of deactivated delegations
    """
    sweep_at = datetime.fromisoformat(now) if now else datetime.utcnow()
    db = SessionLocal()
    try:
        authority = DelegationAuthority(
            SqlAlchemyApprovalRepository(db), scope=settings.delegation_scope
        )
        expired = authority.expire_delegations(sweep_at)

        notifier = NotificationService()
        for delegation in expired:
            delegator = delegation.delegator
            if delegator is None:
                continue
            notifier.notify(
                [delegation.delegate_id],
                "delegation_expired",
                {
                    "org_id": str(delegator.org_id),
                    "delegator_name": delegator.full_name,
                    "ends_at": delegation.ends_at.isoformat() if delegation.ends_at else None,
                },
            )

        logger.info(f"Delegation sweep at {sweep_at.isoformat()}: {len(expired)} expired")
        return {
            "expired": len(expired),
            "delegation_ids": [str(d.id) for d in expired],
        }

    except Exception:
        logger.exception("Delegation sweep failed")
        db.rollback()
        raise

    finally:
        db.close()
