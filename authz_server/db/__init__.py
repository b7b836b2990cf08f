# (c) Copyright Datacraft, 2026
"""Database module for the audit store."""
from .base import Base
from .engine import create_db_engine, create_session_factory

__all__ = [
	'Base',
	'create_db_engine',
	'create_session_factory',
]
