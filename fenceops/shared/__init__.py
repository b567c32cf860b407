"""Shared utilities: validation, geometry, tagged lookups, domain errors"""
