"""Lazily created singletons wiring config, database, store and services together."""

from .config import IncidentAnalyticsConfig, get_config
from .database import close_engine, create_tables, get_session_factory
from .utils.logging import get_logger, setup_logging

_dep_logger = get_logger("dependencies")

_config_instance: IncidentAnalyticsConfig | None = None
_incident_store = None
_report_service = None
_incident_manager = None
_reference_data_manager = None
_metrics_rollup = None
_report_exporter = None


def get_app_config() -> IncidentAnalyticsConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


async def startup(config: IncidentAnalyticsConfig | None = None) -> IncidentAnalyticsConfig:
    """Configure logging and create the schema. Returns the active config."""
    global _config_instance
    if config is not None:
        _config_instance = config
    config = get_app_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )
    await create_tables(config)
    _dep_logger.info("incident_analytics_started", app=config.app_name)
    return config


async def shutdown() -> None:
    """Dispose of the engine and forget every singleton."""
    global _config_instance, _incident_store, _report_service, _incident_manager
    global _reference_data_manager, _metrics_rollup, _report_exporter
    await close_engine()
    _config_instance = None
    _incident_store = None
    _report_service = None
    _incident_manager = None
    _reference_data_manager = None
    _metrics_rollup = None
    _report_exporter = None


def get_incident_store():
    global _incident_store
    if _incident_store is None:
        from .reporting.store import IncidentStore
        _incident_store = IncidentStore(get_session_factory(get_app_config()))
    return _incident_store


def get_report_service():
    global _report_service
    if _report_service is None:
        from .reporting.service import ReportService
        _report_service = ReportService(get_incident_store(), get_app_config())
    return _report_service


def get_incident_manager():
    global _incident_manager
    if _incident_manager is None:
        from .engine.incident_manager import IncidentManager
        _incident_manager = IncidentManager(get_session_factory(get_app_config()))
    return _incident_manager


def get_reference_data_manager():
    global _reference_data_manager
    if _reference_data_manager is None:
        from .engine.reference_data import ReferenceDataManager
        _reference_data_manager = ReferenceDataManager(get_session_factory(get_app_config()))
    return _reference_data_manager


def get_metrics_rollup():
    global _metrics_rollup
    if _metrics_rollup is None:
        from .engine.metrics_rollup import MetricsRollup
        config = get_app_config()
        _metrics_rollup = MetricsRollup(get_session_factory(config), get_incident_store(), config)
    return _metrics_rollup


def get_report_exporter():
    global _report_exporter
    if _report_exporter is None:
        from .export.exporter import ReportExporter
        _report_exporter = ReportExporter(get_report_service(), export_dir=get_app_config().export_dir)
    return _report_exporter
