# =============================================================================
# Chatwoot Python Client -- Error Types
# =============================================================================

from __future__ import annotations

from enum import Enum
from typing import Any


class ChatwootError(Exception):
    """Base exception for all Chatwoot client errors."""


class ChatwootClientExceptionType(str, Enum):
    """Why a backend call failed."""

    NETWORK_FAILURE = "network_failure"
    REQUEST_REJECTED = "request_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_INITIALIZED = "not_initialized"


class ChatwootClientException(ChatwootError):
    """A failed backend call.

    Attributes:
        cause: Human readable description of the failure.
        kind: Failure classification (see :class:`ChatwootClientExceptionType`).
        data: Optional correlation payload, e.g. the ``echo_id`` of the
            message whose send failed.
    """

    def __init__(
        self,
        cause: str,
        kind: ChatwootClientExceptionType,
        *,
        data: Any = None,
    ) -> None:
        self.cause = cause
        self.kind = kind
        self.data = data
        super().__init__(f"[{kind.value}] {cause}")

    def with_data(self, data: Any) -> ChatwootClientException:
        """Copy of this exception carrying *data*, chained to the original."""
        exc = ChatwootClientException(self.cause, self.kind, data=data)
        exc.__cause__ = self
        return exc
