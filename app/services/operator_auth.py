# app/services/operator_auth.py
from typing import Dict, Optional

from jose import JWTError, jwt

from app.config import settings
from app.errors import UnauthorizedError

OPERATOR_ROLE = "operator"


def verify_operator(authorization: Optional[str], secret: Optional[str] = None) -> Dict:
    """
    - Authorization: Bearer <jwt> 헤더를 HS256 으로 검증
    - role 클레임이 operator 인 경우만 통과
    """
    secret = secret or settings.operator_jwt_secret
    if not secret:
        raise UnauthorizedError("Operator access is not configured")
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise UnauthorizedError("Invalid Authorization header")

    try:
        claims = jwt.decode(parts[1].strip(), secret, algorithms=["HS256"], options={"verify_aud": False})
    except JWTError as e:
        raise UnauthorizedError("Invalid token") from e

    if claims.get("role") != OPERATOR_ROLE:
        raise UnauthorizedError("Operator role required")
    return claims
