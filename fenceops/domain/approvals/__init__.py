"""Approvals domain: rule evaluation, sequential sign-off workflow, competitors and alerts"""

from .router import router

__all__ = ["router"]
