# attribution_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .contact import CanonicalContactRecord, LinkedSourceRecord
from .touchpoint import SourceEventRecord

__all__ = [
    "db",
    "BaseModel",
    "CanonicalContactRecord",
    "LinkedSourceRecord",
    "SourceEventRecord",
]
