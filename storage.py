# storage.py
import json, os, threading, logging
from typing import Dict, Optional, Any

logger = logging.getLogger(__name__)


class StoreCorrupt(ValueError):
    """The store file exists but is not a JSON object of string values."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not read saved data from {path}: {reason}")
        self.path = path


class Store:
    """Key-value persistence backed by a single JSON file.

    Every value is a string (collections are stored JSON-encoded under their
    key). Each write rewrites the whole file through a temp file and
    os.replace, so readers never see a half-written store.
    """

    def __init__(self, path: str):
        self.path = path
        parent = os.path.dirname(path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)
        self.state: Dict[str, str] = {}
        self._lock = threading.RLock()
        self.load()

    def load(self):
        with self._lock:
            if not os.path.exists(self.path):
                self.state = {}
                return
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except ValueError as e:
                logger.error("Error parsing %s: %s", self.path, e)
                raise StoreCorrupt(self.path, str(e)) from e
            if not isinstance(data, dict):
                logger.error("Unexpected top-level %s in %s", type(data).__name__, self.path)
                raise StoreCorrupt(self.path, "expected a JSON object")
            self.state = data

    def save(self):
        with self._lock:
            tmp = f"{self.path}.tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self.state, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)

    # ------- key-value API -------
    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self.state.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            previous = self.state.get(key)
            self.state[key] = value
            try:
                self.save()
            except OSError:
                # keep memory consistent with disk
                if previous is None:
                    self.state.pop(key, None)
                else:
                    self.state[key] = previous
                logger.error("Could not write %s to %s", key, self.path)
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self.state:
                return
            previous = self.state.pop(key)
            try:
                self.save()
            except OSError:
                self.state[key] = previous
                logger.error("Could not remove %s from %s", key, self.path)
                raise

    # ------- JSON helpers -------
    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))
