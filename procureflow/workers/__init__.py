"""Background work for ProcureFlow.

Post-commit side effects run on the in-process SideEffectDispatcher; periodic
maintenance runs as Celery tasks (procureflow.workers.delegation_tasks).
"""

from procureflow.workers.dispatcher import SideEffectDispatcher, SideEffectHandle, wait_all

__all__ = [
    "SideEffectDispatcher",
    "SideEffectHandle",
    "wait_all",
]
