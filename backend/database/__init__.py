"""
Database Module

SQLAlchemy models, repositories and connection management for the
assessment engine.
"""

from backend.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
