"""Incident reporting engine: snapshot records, filters, reports and loaders."""

from .engine import ReportingEngine
from .filters import ReportFilter
from .records import (
    CategoryRecord,
    FacilityRecord,
    IncidentRecord,
    PersonnelRecord,
    Severity,
    Snapshot,
    Status,
)
from .result import Deadline, ReportResult
from .service import REPORT_OPTIONS, REPORT_ROW_MODELS, ReportService
from .store import IncidentStore

__all__ = [
    "ReportingEngine",
    "ReportFilter",
    "CategoryRecord",
    "FacilityRecord",
    "IncidentRecord",
    "PersonnelRecord",
    "Severity",
    "Snapshot",
    "Status",
    "Deadline",
    "ReportResult",
    "REPORT_OPTIONS",
    "REPORT_ROW_MODELS",
    "ReportService",
    "IncidentStore",
]
