"""Long-running agent: scheduler, health checks and result upload.

Example:
    >>> from agent import Scheduler, JsonFileUploader
    >>> scheduler = Scheduler(uploader=JsonFileUploader(Path("~/sync").expanduser()))
    >>> await scheduler.start()
"""
from .health import run_health_check
from .scheduler import HealthOutcome, ScanOutcome, Scheduler
from .uploader import JsonFileUploader, NullUploader, Uploader

__all__ = [
    "Scheduler",
    "ScanOutcome",
    "HealthOutcome",
    "run_health_check",
    "Uploader",
    "NullUploader",
    "JsonFileUploader",
]
