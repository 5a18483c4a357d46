"""Delegated approval authority."""

from .models import Delegation
from .authority import DelegationAuthority, is_active

__all__ = [
    "Delegation",
    "DelegationAuthority",
    "is_active",
]
