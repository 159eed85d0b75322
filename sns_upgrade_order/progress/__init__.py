"""
Progress reporting module.

Provides the append-only run log and console formatting of sweep results.
"""

from .formatter import HumanReadableFormatter
from .result_log import LogEntry, ResultLog

__all__ = ["HumanReadableFormatter", "LogEntry", "ResultLog"]
