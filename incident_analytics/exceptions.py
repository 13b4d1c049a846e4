"""Error taxonomy for the incident store, write path and reporting engine."""


class IncidentAnalyticsError(Exception):
    """Base class for every error raised by this package."""


class DataIntegrityError(IncidentAnalyticsError):
    """A referential or value invariant does not hold.

    Raised for orphaned foreign keys found while joining, negative costs,
    resolution timestamps before detection on write, and attempts to
    rewrite audit history.
    """


class CategoryCycleError(DataIntegrityError):
    """Setting a category parent would close a cycle in the hierarchy."""


class ConfigurationError(IncidentAnalyticsError):
    """A filter, option or command argument is invalid.

    Always raised before any aggregation work starts.
    """


class DataSourceError(IncidentAnalyticsError):
    """The backing store could not be read. Not retried internally."""


class ReportTimeoutError(IncidentAnalyticsError):
    """A report computation exceeded its deadline."""
