# =============================================================================
# Chatwoot Python Client -- Configuration
# =============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from .constants import (
    CABLE_PATH,
    CONNECTION_TIMEOUT,
    DEFAULT_STORAGE_FILE,
    REQUEST_TIMEOUT,
    STORAGE_DIR_NAME,
)

ENV_BASE_URL = "CHATWOOT_BASE_URL"
ENV_INBOX_IDENTIFIER = "CHATWOOT_INBOX_IDENTIFIER"
ENV_ENABLE_PERSISTENCE = "CHATWOOT_ENABLE_PERSISTENCE"
ENV_STORAGE_PATH = "CHATWOOT_STORAGE_PATH"


@dataclass
class ChatwootClientConfig:
    """Settings for a widget client.

    Attributes:
        base_url: Chatwoot installation, e.g. ``"https://app.chatwoot.com"``.
        inbox_identifier: Identifier of the API-channel inbox.
        enable_persistence: Keep state in SQLite between runs. When False
            everything lives in memory.
        storage_path: SQLite file. Defaults to ``~/.chatwoot/chatwoot_client.db``.
        request_timeout: Seconds per REST request.
        websocket_open_timeout: Seconds for the realtime handshake.
    """

    base_url: str
    inbox_identifier: str
    enable_persistence: bool = True
    storage_path: Path | None = None
    request_timeout: float = REQUEST_TIMEOUT
    websocket_open_timeout: float = CONNECTION_TIMEOUT

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url is required")
        if not self.inbox_identifier:
            raise ValueError("inbox_identifier is required")
        self.base_url = self.base_url.rstrip("/")
        if self.storage_path is not None:
            self.storage_path = Path(self.storage_path).expanduser()

    @property
    def websocket_url(self) -> str:
        """ActionCable endpoint derived from *base_url*."""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path + CABLE_PATH, "", ""))

    @property
    def database_path(self) -> Path:
        if self.storage_path is not None:
            return self.storage_path
        return Path.home() / STORAGE_DIR_NAME / DEFAULT_STORAGE_FILE

    @classmethod
    def from_env(cls) -> ChatwootClientConfig:
        """Build a config from ``CHATWOOT_*`` environment variables."""
        storage_path = os.environ.get(ENV_STORAGE_PATH)
        return cls(
            base_url=os.environ.get(ENV_BASE_URL, ""),
            inbox_identifier=os.environ.get(ENV_INBOX_IDENTIFIER, ""),
            enable_persistence=os.environ.get(ENV_ENABLE_PERSISTENCE, "true").lower()
            in ("true", "1", "yes", "on"),
            storage_path=Path(storage_path) if storage_path else None,
        )
