"""Application errors and the JSON envelopes sent to clients."""

from __future__ import annotations

from typing import Any, Mapping

from snackstore import constants

_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    429: "TOO_MANY_REQUESTS",
    422: "UNPROCESSABLE_ENTITY",
}


class AppError(Exception):
    """An error carrying the HTTP status and the message shown to the client."""

    def __init__(self, message: str, status: int, err: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.err = err
        self.__cause__ = err

    def __str__(self) -> str:
        return self.message


def error_code_from_status(status: int) -> str:
    """Machine-readable error code for an HTTP status."""
    return _ERROR_CODES.get(status, "INTERNAL_SERVER_ERROR")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    return value


def failed_response(code: str, message: str) -> dict:
    """Error envelope; empty fields are left out."""
    error = {key: val for key, val in (("code", code), ("message", message)) if val}
    return {"error": error}


def success_response(message: str, data: Any) -> dict:
    """Success envelope; an empty message or empty data is left out."""
    body: dict = {}
    if message:
        body["message"] = message
    if not _is_empty(data):
        body["data"] = _jsonable(data)
    return body


def success_with_pagination_response(message: str, data: Any, paging: Any) -> dict:
    """Success envelope with paging metadata."""
    body = success_response(message, list(data) if data is not None else None)
    body["paging"] = _jsonable(paging)
    return body


def http_error_response(err: BaseException) -> tuple[int, dict]:
    """Status and body for an error; anything but an AppError becomes a 500."""
    if isinstance(err, AppError):
        return err.status, failed_response(error_code_from_status(err.status), err.message)
    return 500, failed_response(
        error_code_from_status(500), constants.INTERNAL_SERVER_ERROR
    )


def join_messages(msgs: Mapping[str, str]) -> str:
    """Join messages in order of their keys, separated by commas."""
    return ", ".join(msgs[key] for key in sorted(msgs))


def wrap_message_as_error(msg: str, err: BaseException | None = None) -> Exception:
    """Build an error whose text is the message, followed by the cause if given."""
    if err is not None:
        wrapped = Exception(f"{msg}: {err}")
        wrapped.__cause__ = err
        return wrapped
    return Exception(msg)