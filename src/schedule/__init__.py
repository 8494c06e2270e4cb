"""Scheduling of thread graphs onto a time axis."""

from src.schedule.scheduler import ScheduledEntry, Scheduler, ScheduleResult

__all__ = ["ScheduleResult", "ScheduledEntry", "Scheduler"]
