"""kpidash: KPI tracking service and client library."""

__version__ = "1.0.0"
