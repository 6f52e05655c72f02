"""
Utility helpers used by the sync tool.

This subpackage exposes convenience functions for structured logging and
sync report generation.
"""

from .errors import ERRORS, report_error, report_ok
from .reports import write_sync_report_csv

__all__ = ["ERRORS", "report_error", "report_ok", "write_sync_report_csv"]
