"""SQLAlchemy models package."""

from .base import Base
from .facility import Facility
from .category import Category
from .personnel import Personnel
from .incident import Incident
from .action import Action
from .comment import Comment
from .audit_log import AuditLog
from .incident_metric import IncidentMetric

__all__ = [
    "Base",
    "Facility",
    "Category",
    "Personnel",
    "Incident",
    "Action",
    "Comment",
    "AuditLog",
    "IncidentMetric",
]
