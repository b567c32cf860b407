"""Pricing domain: quotes, line items and market positioning"""

from .router import router

__all__ = ["router"]
