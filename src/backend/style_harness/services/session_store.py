"""
Local key-value stores used to keep a session alive across restarts.

Only three string keys are ever written (identity token, session id,
iteration count). The JSON file store keeps them as one flat object;
the memory store is for tests and throwaway runs.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

AI_ID_KEY = "style_ai_id"
PREFERENCE_ID_KEY = "style_preference_id"
ITERATION_KEY = "style_current_iteration"

SESSION_KEYS = (AI_ID_KEY, PREFERENCE_ID_KEY, ITERATION_KEY)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def update(self, values: Dict[str, str]) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def update(self, values: Dict[str, str]) -> None:
        self._data.update({k: str(v) for k, v in values.items()})

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """
    File-backed store. The whole file is rewritten on every change.

    A missing or unreadable file loads as empty. Write errors (OSError)
    propagate; the session manager treats them as non-fatal.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring session file {self.path}: not a JSON object")
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)
        self._flush()

    def update(self, values: Dict[str, str]) -> None:
        """Write several keys with a single file rewrite. On failure nothing changes."""
        previous = dict(self._data)
        self._data.update({k: str(v) for k, v in values.items()})
        try:
            self._flush()
        except OSError:
            self._data = previous
            raise

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()
