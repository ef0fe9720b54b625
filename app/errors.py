# app/errors.py
# 도메인 예외. main.py의 exception handler가 {error, code} JSON으로 변환한다.
from typing import Any, Dict, Optional


class GameError(Exception):
    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(GameError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(GameError):
    status_code = 404
    default_code = "NOT_FOUND"


class StateConflictError(GameError):
    """Invalid transition: finished session, stale token, inactive round."""
    status_code = 400
    default_code = "STATE_CONFLICT"


class AllowanceExhaustedError(GameError):
    status_code = 400
    default_code = "ALLOWANCE_EXHAUSTED"


class RateLimitedError(AllowanceExhaustedError):
    status_code = 429
    default_code = "RATE_LIMITED"


class UpstreamVerificationError(GameError):
    """Payment proof could not be verified on-chain."""
    status_code = 400
    default_code = "VERIFICATION_FAILED"


class InternalError(GameError):
    status_code = 500
    default_code = "INTERNAL_ERROR"


class UnauthorizedError(GameError):
    status_code = 401
    default_code = "UNAUTHORIZED"
