"""Error type shared by the server's request handlers and background services."""

from __future__ import annotations

import json
from enum import Enum
from http import HTTPStatus
from typing import Any


class AkErrorType(Enum):
    """Category of an :class:`AkError`, serialised by its variant name."""

    BAD_REQUEST = "BadRequest"
    FILE_UPLOAD = "FileUpload"
    INTERNAL = "Internal"
    NOT_FOUND = "NotFound"
    UNAUTHORIZED = "Unauthorized"
    VALIDATION = "Validation"
    CONNECTION_ERROR = "ConnectionError"


_STATUS = {
    AkErrorType.BAD_REQUEST: HTTPStatus.BAD_REQUEST,
    AkErrorType.FILE_UPLOAD: HTTPStatus.BAD_REQUEST,
    AkErrorType.INTERNAL: HTTPStatus.INTERNAL_SERVER_ERROR,
    AkErrorType.NOT_FOUND: HTTPStatus.NOT_FOUND,
    AkErrorType.UNAUTHORIZED: HTTPStatus.UNAUTHORIZED,
    AkErrorType.VALIDATION: HTTPStatus.BAD_REQUEST,
    AkErrorType.CONNECTION_ERROR: HTTPStatus.INTERNAL_SERVER_ERROR,
}


class AkError(Exception):
    """An error carrying a human readable reason and a category."""

    def __init__(self, reason: str, t: AkErrorType) -> None:
        super().__init__(reason)
        self.reason = reason
        self.t = t

    @staticmethod
    def internal() -> AkError:
        return AkError("Internal Server Error", AkErrorType.INTERNAL)

    @staticmethod
    def bad_request(reason: str) -> AkError:
        return AkError(reason, AkErrorType.BAD_REQUEST)

    @staticmethod
    def not_found() -> AkError:
        return AkError("Not Found", AkErrorType.NOT_FOUND)

    @staticmethod
    def unauthorized() -> AkError:
        return AkError("Unauthorized", AkErrorType.UNAUTHORIZED)

    @staticmethod
    def validation(reason: str) -> AkError:
        return AkError(reason, AkErrorType.VALIDATION)

    @staticmethod
    def file_upload() -> AkError:
        return AkError("File upload failure", AkErrorType.FILE_UPLOAD)

    def to_dict(self) -> dict[str, Any]:
        """The error wrapped as the ``Err`` side of a result."""
        return {"Err": {"reason": self.reason, "t": self.t.value}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def http_status(self) -> HTTPStatus:
        return _STATUS[self.t]

    def __str__(self) -> str:
        return self.to_json()

    def __repr__(self) -> str:
        return self.to_json()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AkError):
            return NotImplemented
        return (self.reason, self.t) == (other.reason, other.t)

    def __hash__(self) -> int:
        return hash((self.reason, self.t))