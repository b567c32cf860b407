"""Collaborators outside the core domains (geocoding)"""
