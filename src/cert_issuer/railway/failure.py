"""
Failure description — structured error information for the failure track.

Every adapter boundary converts exceptions into a FailureDescription, so
callers inspect an ErrorCode instead of catching exception types.

Codes are grouped by the issuance stage that produces them, which lets the
batch report tell an operator *where* a recipient's pass stopped.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    - Input:      MISSING_FIELD, INVALID_EMAIL, FORMAT_ERROR
    - Render:     RENDER_ERROR
    - Store:      NETWORK_UNREACHABLE, ACCESS_DENIED, UPLOAD_FAILED
    - Persist:    DUPLICATE_ISSUANCE, DATABASE_ERROR
    - Notify:     NOTIFY_TIMEOUT, NOTIFY_ERROR
    - Everything: NOT_FOUND, CONFIGURATION_ERROR, UNKNOWN_ERROR
    """

    # --- Input (row / file) ---
    MISSING_FIELD = "MISSING_FIELD"
    """Name or email absent or blank in a row."""

    INVALID_EMAIL = "INVALID_EMAIL"
    """Email does not have a local@domain.tld shape."""

    FORMAT_ERROR = "FORMAT_ERROR"
    """Uploaded file is not decodable tabular data. Fatal to the submission."""

    # --- Render ---
    RENDER_ERROR = "RENDER_ERROR"
    """Drawing or encoding the certificate artifact failed."""

    # --- Store ---
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    """Object store could not be reached (DNS, connect, timeout)."""

    ACCESS_DENIED = "ACCESS_DENIED"
    """Object store rejected the request (credentials or access policy)."""

    UPLOAD_FAILED = "UPLOAD_FAILED"
    """Object store accepted the connection but the upload failed."""

    # --- Persist ---
    DUPLICATE_ISSUANCE = "DUPLICATE_ISSUANCE"
    """An issuance record with the same identifier already exists."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Database connectivity or query failure."""

    # --- Notify ---
    NOTIFY_TIMEOUT = "NOTIFY_TIMEOUT"
    """Mail transport did not answer within the notification timeout."""

    NOTIFY_ERROR = "NOTIFY_ERROR"
    """Mail transport refused or failed to deliver the message."""

    # --- General ---
    NOT_FOUND = "NOT_FOUND"
    """Requested issuance record does not exist."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional exception, timestamp.

    >>> desc = FailureDescription(ErrorCode.MISSING_FIELD, "Name is required")
    >>> desc.code
    <ErrorCode.MISSING_FIELD: 'MISSING_FIELD'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
