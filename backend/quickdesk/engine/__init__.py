"""Ticket rules engine"""
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver

__all__ = [
    "PermissionGuard",
    "TransitionResolver",
]
