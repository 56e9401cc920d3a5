"""
Persistence stores for the import queue.

Synchronous key-value stores; each save replaces the whole value for a key.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Default state location
DEFAULT_STATE_DIR = Path.home() / ".cache" / "vimeo-importer"
DEFAULT_STATE_FILE = "state.json"


class MemoryStore:
    """In-process store. Contents are lost with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JSONFileStore:
    """
    File-backed store: one JSON document mapping key -> serialized value.

    Every save rewrites the file (write to temp file, then replace).
    """

    def __init__(self, state_dir: Optional[Path] = None, state_file: str = DEFAULT_STATE_FILE):
        """
        Initialize store.

        Args:
            state_dir: Directory holding the state file
                (default: $IMPORTER_STATE_DIR or ~/.cache/vimeo-importer)
            state_file: Name of the state file (default: state.json)
        """
        if state_dir is None:
            env_dir = os.getenv("IMPORTER_STATE_DIR")
            state_dir = Path(env_dir) if env_dir else DEFAULT_STATE_DIR
        self._state_dir = Path(state_dir)
        self._state_file = self._state_dir / state_file
        self._data: Optional[Dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._state_file

    def _read(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data
        try:
            if self._state_file.exists():
                with open(self._state_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("state file does not hold an object")
                self._data = data
                logger.debug("JSONFileStore: Loaded %d keys from %s", len(data), self._state_file)
            else:
                logger.debug("JSONFileStore: No state file at %s, starting fresh", self._state_file)
                self._data = {}
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("JSONFileStore: Failed to parse state file: %s - starting fresh", e)
            self._data = {}
        return self._data

    def load(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def save(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value

        self._state_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self._state_file.with_suffix(self._state_file.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._state_file)
