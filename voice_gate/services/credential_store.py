"""
Local persistence for the enrolled voiceprint and the session flag.

Two keys are kept, mirroring the browser storage layout the client flows rely on:
``voiceEmbedding`` holds the JSON-encoded float list and ``isAuthenticated``
holds the ``"true"`` marker.
"""

import json
import logging
import math
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

EMBEDDING_KEY = "voiceEmbedding"
SESSION_KEY = "isAuthenticated"


class KeyValueBackend:
    """String key-value storage with atomic per-key reads and writes."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class InMemoryBackend(KeyValueBackend):
    """Process-local backend, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileBackend(KeyValueBackend):
    """
    Backend persisting all keys to a single JSON file.

    The file is read once at construction; every write replaces it atomically.
    """

    def __init__(self, path: str):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring credential file {self.path}: expected an object")
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._data, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._write()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._write()


class CredentialStore:
    """
    Single-identity credential store.

    At most one voiceprint exists at a time; saving replaces it outright.
    """

    def __init__(self, backend: Optional[KeyValueBackend] = None):
        self.backend = backend or InMemoryBackend()

    def save(self, embedding: Sequence[float]) -> None:
        """Store the voiceprint, overwriting any previous one."""
        values = [float(x) for x in np.asarray(embedding, dtype=np.float64).ravel()]
        self.backend.set(EMBEDDING_KEY, json.dumps(values))
        logger.info(f"Saved voiceprint with {len(values)} dimensions")

    def load(self) -> Optional[List[float]]:
        """Return the stored voiceprint, or None if nothing usable is enrolled."""
        raw = self.backend.get(EMBEDDING_KEY)
        if raw is None:
            return None
        try:
            values = json.loads(raw)
            if not isinstance(values, list) or not values:
                raise ValueError("stored voiceprint is not a non-empty list")
            if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in values):
                raise ValueError("stored voiceprint contains non-numeric values")
            embedding = [float(x) for x in values]
            if not all(math.isfinite(x) for x in embedding):
                raise ValueError("stored voiceprint contains NaN or infinite values")
            return embedding
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to parse stored voiceprint: {e}")
            return None

    @property
    def has_credential(self) -> bool:
        return self.load() is not None

    def preview(self, count: int = 5) -> Optional[str]:
        """First few voiceprint values, for display."""
        embedding = self.load()
        if embedding is None:
            return None
        return ", ".join(f"{x:.4f}" for x in embedding[:count]) + "..."

    def mark_authenticated(self) -> None:
        self.backend.set(SESSION_KEY, "true")

    @property
    def is_authenticated(self) -> bool:
        return self.backend.get(SESSION_KEY) == "true"

    def clear_session(self) -> None:
        self.backend.remove(SESSION_KEY)

    def clear(self) -> None:
        """Remove both the session flag and the voiceprint."""
        self.backend.remove(SESSION_KEY)
        self.backend.remove(EMBEDDING_KEY)
        logger.info("Cleared stored voiceprint and session flag")
