# =============================================================================
# apphost/workers/ - Background Task Runtime
# =============================================================================
# Used when an application runs in cron mode:
# - scheduler.py: APScheduler setup, start and stop
# =============================================================================

from .scheduler import create_scheduler, start_scheduler, stop_scheduler

__all__ = [
    "create_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
