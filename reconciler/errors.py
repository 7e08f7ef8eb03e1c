"""
reconciler/errors.py
Structured error taxonomy for the permission & metadata reconciler.

Every error carries an ErrorCode (searchable, stable) and a details dict with
the account/controller/key context needed to reproduce the failing read on its
own.

ERROR CODE FORMAT:
- ACL_XXX: Codec errors (capability names, fixed-width fields)
- REGISTRY_XXX: Inconsistent state found on the ledger
- REMOTE_XXX: Transport/timeout errors talking to the ledger
- UPLOAD_XXX: Off-chain content store errors
- AUTH_XXX: Executor lacks the permissions a batch needs
- CONFIG_XXX: Configuration errors

USAGE:
  from reconciler.errors import RegistryInconsistencyError

  raise RegistryInconsistencyError(
      "Stored length does not match elements",
      details={"account": account, "stored_length": 3, "found": 2},
  )
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Codec Errors
    ACL_UNKNOWN_CAPABILITY = "ACL_001"
    ACL_MALFORMED_FIELD = "ACL_002"

    # Registry Errors
    REGISTRY_INCONSISTENT = "REGISTRY_001"

    # Remote Errors
    REMOTE_TIMEOUT = "REMOTE_001"
    REMOTE_TRANSPORT = "REMOTE_002"

    # Upload Errors
    UPLOAD_FAILED = "UPLOAD_001"

    # Auth Errors
    AUTH_PERMISSION_DENIED = "AUTH_001"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"


class ReconcilerError(Exception):
    """
    Base exception with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "ACL_001")
        message: Human-readable error message
        details: Context (account, controller, key, ...) for reproduction
    """

    code: ErrorCode = ErrorCode.ACL_MALFORMED_FIELD
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}

        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        text = f"[{self.code.value}] {message}"
        if context:
            text = f"{text} ({context})"
        super().__init__(text)

    def with_context(self, **context: Any) -> "ReconcilerError":
        """Add context keys that are not already present. Returns self."""
        for key, value in context.items():
            if value is not None:
                self.details.setdefault(key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class UnknownCapabilityError(ReconcilerError):
    """A capability name the codec does not recognize. Not retried."""
    code = ErrorCode.ACL_UNKNOWN_CAPABILITY


class MalformedFieldError(ReconcilerError):
    """A fixed-width field or encoded value has the wrong shape. Not retried."""
    code = ErrorCode.ACL_MALFORMED_FIELD


class RegistryInconsistencyError(ReconcilerError):
    """
    Stored state contradicts itself (e.g. array length vs. elements).

    Surfaced to the caller and never auto-repaired.
    """
    code = ErrorCode.REGISTRY_INCONSISTENT


class RemoteTimeoutError(ReconcilerError):
    """A remote read did not finish within its timeout. Re-plan and retry."""
    code = ErrorCode.REMOTE_TIMEOUT
    retryable = True


class TransportError(ReconcilerError):
    """The ledger endpoint failed (HTTP error, JSON-RPC error, bad payload)."""
    code = ErrorCode.REMOTE_TRANSPORT
    retryable = True


class UploadError(ReconcilerError):
    """The off-chain content store failed; the caller owns the retry policy."""
    code = ErrorCode.UPLOAD_FAILED


class InsufficientPermissionError(ReconcilerError):
    """The executor lacks LSP6 permissions required to apply a batch."""
    code = ErrorCode.AUTH_PERMISSION_DENIED


class ConfigError(ReconcilerError):
    code = ErrorCode.CONFIG_INVALID


__all__ = [
    "ErrorCode",
    "ReconcilerError",
    "UnknownCapabilityError",
    "MalformedFieldError",
    "RegistryInconsistencyError",
    "RemoteTimeoutError",
    "TransportError",
    "UploadError",
    "InsufficientPermissionError",
    "ConfigError",
]
