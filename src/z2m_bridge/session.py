"""Broker session state and its external persistence."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.structs import SessionState

__all__ = [
    "BrokerSession",
    "MemorySessionStateStore",
    "SessionStateStore",
    "YamlSessionStateStore",
]

logger = get_logger(__name__)


class SessionStateStore(Protocol):
    """External store for per-session flags, keyed by session id."""

    def load(self, session_id: str) -> dict[str, Any]:
        """Return the stored values for a session (empty if none)."""
        ...

    def save(self, session_id: str, data: dict[str, Any]) -> None:
        """Replace the stored values for a session."""
        ...


class MemorySessionStateStore:
    """Process-lifetime store; the default when nothing durable is configured."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def load(self, session_id: str) -> dict[str, Any]:
        return dict(self._data.get(session_id, {}))

    def save(self, session_id: str, data: dict[str, Any]) -> None:
        self._data[session_id] = dict(data)


class YamlSessionStateStore:
    """Durable store: one YAML file holding a mapping of session id -> values."""

    def __init__(self, path: str | Path) -> None:
        self.path: Path = Path(path).expanduser()
        self._lock: threading.Lock = threading.Lock()

    def _read_all(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open() as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            logger.exception("Failed to read session state file %s; starting empty", self.path)
            return {}
        return {str(k): dict(v) for k, v in data.items() if isinstance(v, dict)} if isinstance(data, dict) else {}

    def load(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            return self._read_all().get(session_id, {})

    def save(self, session_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            all_data = self._read_all()
            all_data[session_id] = dict(data)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("w") as f:
                    yaml.safe_dump(all_data, f, default_flow_style=False)
            except OSError:
                logger.exception("Failed to write session state file %s", self.path)


@dataclass
class BrokerSession:
    """State of one bridge instance's broker connection.

    ``retry_delay_seconds`` is None until the first failure after a cold start;
    a successful connect resets it to the starting delay.
    """

    session_id: str
    connection_uri: str
    client_id: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    state: SessionState = SessionState.DISCONNECTED
    retry_delay_seconds: int | None = None
    state_store: SessionStateStore = field(default_factory=MemorySessionStateStore, repr=False)

    @property
    def has_initialized_once(self) -> bool:
        return bool(self.state_store.load(self.session_id).get("has_initialized_once", False))

    def mark_initialized(self) -> None:
        data = self.state_store.load(self.session_id)
        data["has_initialized_once"] = True
        self.state_store.save(self.session_id, data)

    def clear_initialized(self) -> None:
        data = self.state_store.load(self.session_id)
        _ = data.pop("has_initialized_once", None)
        self.state_store.save(self.session_id, data)
