"""Platform timer service implementations."""

from .celery_timer import CeleryTimerService
from .in_process import InProcessTimerService

__all__ = [
    "CeleryTimerService",
    "InProcessTimerService",
]
