"""Process-wide cooperative cancellation flag for discovery scans.

Cancellation is coarse-grained: long-running stages check the flag at
batch boundaries and never interrupt an in-flight probe.
"""
import threading

from config import get_logger

logger = get_logger(__name__)


class CancelFlag:
    """Thread-safe boolean that a scan polls between batches."""

    def __init__(self):
        self._event = threading.Event()

    def request(self) -> None:
        if not self._event.is_set():
            logger.info("Scan cancellation requested")
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()


_scan_cancel = CancelFlag()


def get_cancel_flag() -> CancelFlag:
    return _scan_cancel


def request_cancel() -> None:
    """Ask the running scan to stop before its next batch."""
    _scan_cancel.request()


def clear_cancel() -> None:
    _scan_cancel.clear()


def is_cancelled() -> bool:
    return _scan_cancel.is_set()
