"""
JWT Parser - Issue and verify ShopKeeper access tokens

Verification never raises for a bad token. It returns either a
``VerifiedToken`` or a ``TokenFailure`` carrying the machine-readable code
the client uses to tell "log in again" from "session expired".
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

import jwt

from src.utils.logging import get_logger

logger = get_logger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60


class TokenErrorCode(str, Enum):
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_ERROR = "TOKEN_ERROR"


TOKEN_ERROR_MESSAGES = {
    TokenErrorCode.NO_TOKEN: "Access denied. No token provided.",
    TokenErrorCode.INVALID_TOKEN: "Invalid token format.",
    TokenErrorCode.TOKEN_EXPIRED: "Session expired. Please login again.",
    TokenErrorCode.TOKEN_ERROR: "Invalid token.",
}


@dataclass(frozen=True)
class VerifiedToken:
    """
    Decoded access token.

    Attributes:
        user_id: Principal identifier (``id`` claim, None when absent)
        expires_at: Expiry (``exp`` claim)
        claims: Full decoded payload
    """
    user_id: Optional[str]
    expires_at: datetime
    claims: Dict[str, Any]


@dataclass(frozen=True)
class TokenFailure:
    code: TokenErrorCode
    message: str

    @classmethod
    def of(cls, code: TokenErrorCode) -> 'TokenFailure':
        return cls(code=code, message=TOKEN_ERROR_MESSAGES[code])


TokenVerification = Union[VerifiedToken, TokenFailure]


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header value.

    Returns:
        The token, or None when the header is absent, uses another scheme,
        or has nothing after the scheme
    """
    if not authorization or not authorization.startswith("Bearer"):
        return None

    parts = authorization.split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


def create_access_token(
    user_id: str,
    secret: str,
    expires_in: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    algorithm: str = ALGORITHM,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: User identifier, stored in the ``id`` claim
        secret: Signing secret
        expires_in: Token lifetime
        algorithm: JWT signing algorithm
        now: Issue time (defaults to the current UTC time)

    Returns:
        Encoded JWT string
    """
    if not secret:
        raise ValueError("Cannot sign tokens without a JWT secret")

    now = now or datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }

    token = jwt.encode(payload, secret, algorithm=algorithm)
    logger.debug(f"Access token created for user {user_id}")
    return token


def verify_token(token: Optional[str], secret: str, algorithm: str = ALGORITHM) -> TokenVerification:
    """
    Verify signature and expiry of an access token.

    Args:
        token: Encoded JWT (None or empty yields NO_TOKEN)
        secret: Signing secret
        algorithm: Accepted signing algorithm

    Returns:
        VerifiedToken on success, TokenFailure otherwise
    """
    if not token:
        return TokenFailure.of(TokenErrorCode.NO_TOKEN)

    if not secret:
        logger.error("JWT secret is not configured; rejecting token")
        return TokenFailure.of(TokenErrorCode.INVALID_TOKEN)

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return TokenFailure.of(TokenErrorCode.TOKEN_EXPIRED)
    except (jwt.DecodeError, jwt.InvalidAlgorithmError) as e:
        # DecodeError covers malformed tokens and bad signatures
        logger.warning(f"Rejected malformed token: {e}")
        return TokenFailure.of(TokenErrorCode.INVALID_TOKEN)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected token: {e}")
        return TokenFailure.of(TokenErrorCode.TOKEN_ERROR)

    return VerifiedToken(
        user_id=str(claims["id"]) if claims.get("id") is not None else None,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        claims=claims,
    )


def decode_jwt_claims(token_string: str) -> Dict[str, Any]:
    """
    Decode a token without verifying it (for inspection only).

    Warning:
        The signature is NOT checked. Never use the result for access decisions.
    """
    try:
        return jwt.decode(token_string, options={"verify_signature": False})
    except jwt.DecodeError as e:
        logger.error(f"Failed to decode JWT: {e}")
        return {}
