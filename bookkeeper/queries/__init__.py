"""Reporting package."""

from bookkeeper.queries.reports import ReportAggregator

__all__ = ["ReportAggregator"]
