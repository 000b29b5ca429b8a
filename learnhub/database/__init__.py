"""
Database Module

This module provides the declarative base and engine helpers for the
SQL-backed repositories.
"""

from learnhub.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
