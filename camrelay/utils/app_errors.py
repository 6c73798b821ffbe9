"""Application error types shared by the domain, services and API layers."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    """Error codes surfaced to viewers and HTTP clients."""

    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    # Router / capabilities not initialized yet; retry later
    E_NOT_READY = "E_NOT_READY"
    E_INVALID_TRANSPORT = "E_INVALID_TRANSPORT"
    E_NO_PRODUCER = "E_NO_PRODUCER"
    E_ENGINE_CALL_FAILED = "E_ENGINE_CALL_FAILED"
    E_ENGINE_TIMEOUT = "E_ENGINE_TIMEOUT"
    E_DUPLICATE_IDENTIFIER = "E_DUPLICATE_IDENTIFIER"
    E_SESSION_CLOSED = "E_SESSION_CLOSED"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


class AppError(Exception):
    """Application error carrying an error code, a message and an HTTP status.

    The caller location is captured at construction time so the log line written
    by the error handler points at the raise site rather than the handler.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        frame = inspect.currentframe()
        caller = frame.f_back if frame else None
        if caller is not None:
            self.caller_info = (
                f"{caller.f_globals.get('__name__', '?')}:{caller.f_code.co_name}:{caller.f_lineno}"
            )
        else:
            self.caller_info = "unknown"

    def __str__(self) -> str:
        return f"{self.errcode}: {self.errmesg}"

    def __repr__(self) -> str:
        return f"AppError(errcode={self.errcode!r}, errmesg={self.errmesg!r})"
