"""Ratebook domain: pricing zones, property types, terrain and distance tiers"""

from .router import router

__all__ = ["router"]
