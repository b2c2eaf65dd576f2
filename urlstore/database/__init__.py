"""
Relational database plumbing: declarative base, pooled engine, migrations.
"""

from .connection import Base, make_engine, make_session_factory

__all__ = ["Base", "make_engine", "make_session_factory"]
