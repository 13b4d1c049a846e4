"""Security incident store and analytical reporting engine."""

__version__ = "1.0.0"
