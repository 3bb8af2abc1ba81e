"""Errors reported to clients, each carrying an HTTP-like status code."""

from __future__ import annotations

import json
from typing import Any

_MAX_REQUEST_ID = 0xFFFF


class EmitterError(Exception):
    """An error with a status code, optionally bound to a client request."""

    def __init__(self, status: int, message: str, request: int = 0) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.request = request

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"EmitterError(status={self.status!r}, message={self.message!r}, "
            f"request={self.request!r})"
        )

    def copy(self) -> EmitterError:
        """Return an independent copy of this error."""
        return EmitterError(self.status, self.message, self.request)

    def for_request(self, request_id: int) -> None:
        """Bind the error to the request with the given identifier."""
        if not 0 <= request_id <= _MAX_REQUEST_ID:
            raise ValueError(f"request id {request_id} is out of range")
        self.request = request_id

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation; the request is omitted when unset."""
        result: dict[str, Any] = {}
        if self.request:
            result["req"] = self.request
        result["status"] = self.status
        result["message"] = self.message
        return result

    def to_json(self) -> str:
        """Serialise the error to compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


def new_error(message: str) -> EmitterError:
    """Create a server error (status 500) with the given message."""
    return EmitterError(500, message)


ERR_BAD_REQUEST = EmitterError(400, "the request was invalid or cannot be otherwise served")
ERR_UNAUTHORIZED = EmitterError(
    401, "the security key provided is not authorized to perform this operation"
)
ERR_PAYMENT_REQUIRED = EmitterError(
    402, "the request can not be served, as the payment is required to proceed"
)
ERR_FORBIDDEN = EmitterError(
    403, "the request is understood, but it has been refused or access is not allowed"
)
ERR_NOT_FOUND = EmitterError(404, "the resource requested does not exist")
ERR_SERVER_ERROR = EmitterError(
    500, "an unexpected condition was encountered and no more specific message is suitable"
)
ERR_NOT_IMPLEMENTED = EmitterError(
    501,
    "the server either does not recognize the request method, "
    "or it lacks the ability to fulfill the request",
)
ERR_TARGET_INVALID = EmitterError(
    400, "channel should end with `/` for strict types or `/#/` for wildcards"
)
ERR_TARGET_TOO_LONG = EmitterError(400, "channel can not have more than 23 parts")
ERR_LINK_INVALID = EmitterError(
    400, "the link must be an alphanumeric string of 1 or 2 characters"
)
ERR_UNAUTHORIZED_EXT = EmitterError(
    401, "the security key with extend permission can only be used for private links"
)