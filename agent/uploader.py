"""Hand-off of scan and health results to the synchronization layer.

The agent only depends on the ``Uploader`` interface. The authenticated
remote client lives outside this project; the implementations here cover
running without one.
"""
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from config import STORAGE, get_logger
from config.exceptions import UploadError
from discovery.models import DeviceHealthResult, ScanResult

logger = get_logger(__name__)


class Uploader(ABC):
    """Destination for scan and health results.

    Implementations raise UploadError on failure; callers treat that as
    "not synced" and carry on.
    """

    @abstractmethod
    def upload_scan(self, result: ScanResult) -> None:
        """Send a completed scan."""

    @abstractmethod
    def upload_health(self, results: List[DeviceHealthResult]) -> None:
        """Send one health-check batch."""


class NullUploader(Uploader):
    """Discards results. Used when no synchronization target is configured."""

    def upload_scan(self, result: ScanResult) -> None:
        logger.debug(f"No uploader configured, keeping scan of {len(result.devices)} devices local")

    def upload_health(self, results: List[DeviceHealthResult]) -> None:
        logger.debug(f"No uploader configured, keeping {len(results)} health results local")


class JsonFileUploader(Uploader):
    """Writes the latest payloads as JSON files for an external sync process."""

    def __init__(self, target_dir: Path):
        self.target_dir = Path(target_dir)

    def _write(self, filename: str, payload) -> None:
        path = self.target_dir / filename
        try:
            self.target_dir.mkdir(parents=True, exist_ok=True)
            temp_file = path.with_suffix('.tmp')
            with open(temp_file, 'w') as f:
                json.dump(payload, f, indent=2)
            temp_file.replace(path)
        except OSError as e:
            raise UploadError(f"Failed to write {filename}: {e}", {"path": str(path)}) from e
        logger.debug(f"Wrote {path}")

    def upload_scan(self, result: ScanResult) -> None:
        self._write(STORAGE.LAST_SCAN_UPLOAD_FILE, result.to_dict())

    def upload_health(self, results: List[DeviceHealthResult]) -> None:
        self._write(STORAGE.LAST_HEALTH_UPLOAD_FILE, [r.to_dict() for r in results])
