# app/models/__init__.py
"""ORM models; importing this package registers every table on Base.metadata."""

from app.models.base import Base, BaseModel, utc_now
from app.models.instance import Instance
from app.models.schedule import Schedule
from app.models.user import User

__all__ = ["Base", "BaseModel", "utc_now", "User", "Instance", "Schedule"]
