from typing import Any, Dict, Optional

ERROR_STATUS = {
    "BAD_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "METHOD_NOT_SUPPORTED": 405,
    "CONFLICT": 409,
    "INTERNAL_SERVER_ERROR": 500,
}


class RpcError(Exception):
    """Procedure failure carrying a code and a message meant to be shown to the user."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.data = data

    @property
    def http_status(self) -> int:
        return ERROR_STATUS.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        body = {"code": self.code, "message": self.message}
        if self.data:
            body["data"] = self.data
        return body


class BadRequestError(RpcError):
    code = "BAD_REQUEST"


class UnauthorizedError(RpcError):
    code = "UNAUTHORIZED"


class ForbiddenError(RpcError):
    code = "FORBIDDEN"


class NotFoundError(RpcError):
    code = "NOT_FOUND"


class ConflictError(RpcError):
    code = "CONFLICT"


class MethodNotSupportedError(RpcError):
    code = "METHOD_NOT_SUPPORTED"
