# cwl_loader/common/database.py
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union


class JsonDatabase:
    """
    A tiny key-value store persisted as one JSON document.

    Used by the cleaner to remember what it already fetched, so an interrupted
    run can pick up where it stopped.
    """

    def __init__(self, path: Union[str, Path], save_on_push: bool = True):
        self.path = Path(path)
        self.save_on_push = save_on_push
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            content = f.read().strip()
        if not content:
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Database file {self.path} does not hold a JSON object")
        return data

    def get_data(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def push(self, key: str, value: Any, override: bool = True) -> None:
        """
        Stores `value` under `key`.

        With override=False an existing list is extended and an existing dict
        is merged instead of being replaced.
        """
        current = self._data.get(key)
        if not override and isinstance(current, list) and isinstance(value, list):
            value = current + value
        elif not override and isinstance(current, dict) and isinstance(value, dict):
            value = {**current, **value}
        self._data[key] = value

        if self.save_on_push:
            self.save()

    def delete(self, key: Optional[str] = None) -> None:
        """Removes one key, or everything when no key is given."""
        if key is None:
            self._data = {}
        else:
            self._data.pop(key, None)
        if self.save_on_push:
            self.save()

    def save(self) -> None:
        """Writes a sibling temp file and swaps it in, so a crash never leaves a half-written document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            os.unlink(tmp_name)
            raise
