# attribution_app/models/base.py
"""
Shared SQLAlchemy handle and abstract base model.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utc_now():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite drops tzinfo on read; treat stored naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseModel(db.Model):
    """Abstract base adding audit timestamps to every table."""

    __abstract__ = True

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        identifier = getattr(self, "id", None)
        return f"<{type(self).__name__} {identifier}>"
