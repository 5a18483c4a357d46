from functools import lru_cache
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from procureflow.core.approval import ApprovalService
from procureflow.core.config import get_settings
from procureflow.core.delegation import DelegationAuthority
from procureflow.core.rbac import Principal
from procureflow.core.workflow import WorkflowService
from procureflow.db.models import User
from procureflow.db.repository import SqlAlchemyApprovalRepository, principal_from_user
from procureflow.db.session import SessionLocal
from procureflow.services import HttpDocumentGenerator, HttpEmailSender, NotificationService
from procureflow.workers.dispatcher import SideEffectDispatcher


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(
    db: Session = Depends(get_db),
    principal_id: Optional[str] = Header(None, alias="X-Principal-Id"),
) -> Principal:
    """Resolve the acting principal from the X-Principal-Id header.

    Authentication happens upstream; this service trusts the forwarded id.
    """
    if not principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Principal-Id header",
        )
    try:
        user_id = UUID(principal_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-Principal-Id header",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive principal",
        )
    return principal_from_user(user)


@lru_cache
def get_dispatcher() -> SideEffectDispatcher:
    """Process-wide side-effect pool."""
    return SideEffectDispatcher(get_settings().side_effect_workers)


def shutdown_dispatcher() -> None:
    """Join the side-effect pool threads and drop the cached pool."""
    if get_dispatcher.cache_info().currsize:
        get_dispatcher().shutdown(wait=True)
        get_dispatcher.cache_clear()


def get_approval_service(db: Session = Depends(get_db)) -> ApprovalService:
    settings = get_settings()
    return ApprovalService(
        SqlAlchemyApprovalRepository(db),
        notifier=NotificationService(),
        documents=HttpDocumentGenerator() if settings.document_service_url else None,
        emails=HttpEmailSender() if settings.email_service_url else None,
        dispatcher=get_dispatcher(),
        settings=settings,
    )


def get_delegation_authority(db: Session = Depends(get_db)) -> DelegationAuthority:
    return DelegationAuthority(
        SqlAlchemyApprovalRepository(db), scope=get_settings().delegation_scope
    )


def get_workflow_service(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> WorkflowService:
    return WorkflowService(db, principal)
