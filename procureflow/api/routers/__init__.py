"""API routers for ProcureFlow."""

from . import approvals
from . import delegations
from . import health
from . import workflows

__all__ = [
    "approvals",
    "delegations",
    "health",
    "workflows",
]
