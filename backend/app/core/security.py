# app/core/security.py
"""
Security module for anonymous authentication.
Handles signing and verifying the short-lived bearer credentials that bind a
pseudonymous identity to one login session.
"""
import time
from dataclasses import dataclass
from typing import Optional

import jwt  # PyJWT

from app.core.errors import InvalidCredential

JWT_ALG = "HS256"  # JWT signing algorithm (HMAC SHA-256)
TOKEN_TYPE = "anonymous"  # The only credential type this service accepts


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a credential."""
    user_id: str
    session_id: str
    issued_at: int
    expires_at: int


class TokenIssuer:
    """
    Issues and verifies anonymous credentials.

    Tokens expire `ttl_seconds` after issuance (24h by default). There is no
    refresh: a caller with an expired token logs in again and receives a new
    session and a new token.
    """

    def __init__(self, secret: str, ttl_seconds: int = 24 * 60 * 60, algorithm: str = JWT_ALG):
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self.algorithm = algorithm

    def issue(self, user_id: str, session_id: str, now: Optional[float] = None) -> str:
        """
        Create a signed token.

        Payload:
            - userId: identity the token belongs to
            - sessionId: login session the token was issued for
            - type: always "anonymous"
            - iat / exp: issued-at and expiry, in whole seconds
        """
        iat = int(now if now is not None else time.time())
        payload = {
            "userId": user_id,
            "sessionId": session_id,
            "type": TOKEN_TYPE,
            "iat": iat,
            "exp": iat + self.ttl_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and validate a token.

        Raises:
            InvalidCredential: bad signature, malformed token, expired token,
                wrong token type or missing claims.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredential("Token expired", code="AUTH_TOKEN_EXPIRED") from e
        except jwt.InvalidTokenError as e:
            raise InvalidCredential() from e

        if payload.get("type") != TOKEN_TYPE:
            raise InvalidCredential("Invalid token type")
        user_id = payload.get("userId")
        session_id = payload.get("sessionId")
        if not user_id or not session_id:
            raise InvalidCredential()

        return TokenClaims(
            user_id=user_id,
            session_id=session_id,
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )
