"""
Pollers built on the request pipeline.

Provides:
- ProgressTracker: cached lesson-progress reads
- HealthMonitor: cached, single-flight backend health checks
- PollScheduler: interval jobs for cache sweeps and health polling
"""

from lmsapi.pollers.health import BackendStatus, HealthMonitor
from lmsapi.pollers.progress import DEFAULT_PROGRESS, ProgressTracker, progress_key
from lmsapi.pollers.scheduler import PollScheduler

__all__ = [
    "BackendStatus",
    "HealthMonitor",
    "DEFAULT_PROGRESS",
    "ProgressTracker",
    "progress_key",
    "PollScheduler",
]
