"""Timers periódicos, scheduler de evaluación y log de errores."""

from .error_log import ErrorLog, ErrorLogEntry
from .periodic import PeriodicTask
from .scheduler import MonitoringScheduler

__all__ = ["ErrorLog", "ErrorLogEntry", "PeriodicTask", "MonitoringScheduler"]
