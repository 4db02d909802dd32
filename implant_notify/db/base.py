from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Timestamps are naive server-local wall-clock values; digest timing is
    matched against the server clock, not per-organization time zones.
    """
    type_annotation_map = {
        datetime: DateTime(timezone=False),
    }
