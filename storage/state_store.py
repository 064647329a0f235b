"""JSON-based persistence of the agent's scheduler state."""
import json
import threading
from pathlib import Path
from typing import Optional

from config import STORAGE, get_logger
from config.exceptions import StorageError
from discovery.models import SchedulerState

logger = get_logger(__name__)


class StateStore:
    """Loads and saves SchedulerState to ``agent_state.json``.

    Writes are atomic (temp file, then rename) so a crash mid-write never
    leaves a truncated state file behind.
    """

    DEFAULT_DATA_DIR = Path.home() / STORAGE.DATA_DIR_NAME
    DEFAULT_STATE_FILE = STORAGE.STATE_FILE

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else self.DEFAULT_DATA_DIR
        self.state_file = self.data_dir / self.DEFAULT_STATE_FILE
        self._lock = threading.Lock()

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def load_state(self) -> SchedulerState:
        """Load persisted state, falling back to defaults when missing or corrupt."""
        with self._lock:
            if not self.state_file.exists():
                logger.debug("No existing state file, starting fresh")
                return SchedulerState()
            try:
                with open(self.state_file) as f:
                    data = json.load(f)
                state = SchedulerState.from_dict(data)
            except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Could not load state file, using defaults: {e}")
                return SchedulerState()

        logger.debug(f"Loaded state with {len(state.known_devices)} known devices")
        return state

    def save_state(self, state: SchedulerState) -> None:
        """Write state to disk.

        Raises:
            StorageError: If the file cannot be written.
        """
        with self._lock:
            try:
                self._ensure_data_dir()
                # Atomic write: write to temp file then rename
                temp_file = self.state_file.with_suffix('.tmp')
                with open(temp_file, 'w') as f:
                    json.dump(state.to_dict(), f, indent=2)
                temp_file.replace(self.state_file)
            except OSError as e:
                logger.error(f"Error saving state: {e}")
                raise StorageError(f"Failed to save state: {e}",
                                   {"path": str(self.state_file)}) from e
        logger.debug(f"State saved ({len(state.known_devices)} devices)")

    def clear_state(self) -> None:
        """Delete the persisted state file."""
        with self._lock:
            try:
                self.state_file.unlink()
                logger.info("Agent state cleared")
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Failed to clear state: {e}",
                                   {"path": str(self.state_file)}) from e

    def get_state_file_path(self) -> str:
        return str(self.state_file)
