"""
Background Jobs Module

Handles scheduled tasks for:
- Syncing surviving original orders with their divisions
"""

from orderhub.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from orderhub.jobs.division_jobs import sync_divided_orders

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "sync_divided_orders",
]
