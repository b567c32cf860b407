"""Scheduling domain: job clusters, route ordering and scheduling discounts"""

from .router import router

__all__ = ["router"]
