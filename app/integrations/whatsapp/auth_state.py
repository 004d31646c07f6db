"""
Per-instance credential storage in a session folder.

Layout::

    <session>/creds.json        # account credentials
    <session>/keys/<name>.json  # signal keys, one blob per file

The blobs are opaque to this service; they are produced by the gateway and
handed back to it when a session is started again.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

from app.core.logging import get_logger

logger = get_logger(__name__)

CREDS_FILE = "creds.json"
KEYS_DIR = "keys"

_UNSAFE = re.compile(r"[/\\:]")


def _safe_name(name: str) -> str:
    return _UNSAFE.sub("-", str(name))


def _write_json(path: Path, data: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except ValueError:
        logger.warning("auth_state_corrupt_file", path=str(path))
        return None


class MultiFileAuthState:
    def __init__(self, folder: os.PathLike | str):
        self.folder = Path(folder)
        self.creds: Optional[dict] = None
        self.keys: dict[str, Any] = {}

    @property
    def state(self) -> dict[str, Any]:
        return {"creds": self.creds, "keys": self.keys}

    @property
    def has_creds(self) -> bool:
        return bool(self.creds)

    def load(self) -> "MultiFileAuthState":
        self.folder.mkdir(parents=True, exist_ok=True)
        self.creds = _read_json(self.folder / CREDS_FILE)
        keys_dir = self.folder / KEYS_DIR
        self.keys = {}
        if keys_dir.is_dir():
            for p in sorted(keys_dir.glob("*.json")):
                value = _read_json(p)
                if value is not None:
                    self.keys[p.stem] = value
        return self

    def save_creds(self, creds: Optional[dict] = None) -> None:
        if creds is not None:
            self.creds = creds
        if self.creds is None:
            return
        self.folder.mkdir(parents=True, exist_ok=True)
        _write_json(self.folder / CREDS_FILE, self.creds)

    def save_keys(self, keys: dict[str, Any]) -> None:
        """None values delete the corresponding key file."""
        keys_dir = self.folder / KEYS_DIR
        keys_dir.mkdir(parents=True, exist_ok=True)
        for name, value in keys.items():
            path = keys_dir / f"{_safe_name(name)}.json"
            if value is None:
                path.unlink(missing_ok=True)
                self.keys.pop(_safe_name(name), None)
            else:
                _write_json(path, value)
                self.keys[_safe_name(name)] = value


def use_multi_file_auth_state(folder: os.PathLike | str) -> MultiFileAuthState:
    """Load (or initialise) the auth state stored in ``folder``."""
    return MultiFileAuthState(folder).load()
