# invite_service/db/base.py

"""
Single source of truth for the SQLAlchemy Declarative Base.

This file must NOT import invite_service.models; the models module imports
Base from here and a reverse import would be circular.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass
