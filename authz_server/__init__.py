# (c) Copyright Datacraft, 2026
"""Attribute-based access control decision service."""
