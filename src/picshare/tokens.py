"""Bearer token issuance and validation for PicShare.

Tokens are HS256-signed JWTs asserting an owner id and email for a fixed
lifetime. They are stateless: nothing is persisted, and validation is a
pure function of the token text, the signing key and the current time.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from picshare.config import TOKEN_TTL_MINUTES, AuthConfig
from picshare.errors import InvalidToken

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Claims:
    """Identity asserted by a validated token.

    Attributes:
        owner_id: Account identifier.
        email: Account email.
        issued_at: Issue time, seconds since the epoch.
        expires_at: Expiry time, seconds since the epoch.
    """

    owner_id: int
    email: str
    issued_at: int
    expires_at: int


class TokenService:
    """Issues and validates signed, time-boxed identity tokens.

    The signing key is read once from the immutable ``AuthConfig`` given at
    construction.

    Attributes:
        ttl_seconds: Token lifetime.
    """

    def __init__(self, config: AuthConfig, clock: Callable[[], float] = time.time) -> None:
        """Initialize the token service.

        Args:
            config: Auth configuration carrying the signing key.
            clock: Source of the current time, in seconds since the epoch.
        """
        self._signing_key = config.signing_key
        self.ttl_seconds = TOKEN_TTL_MINUTES * 60
        self._clock = clock

    def issue_token(self, owner_id: int, email: str) -> tuple[str, int]:
        """Create a signed token for an account.

        Args:
            owner_id: Account identifier.
            email: Account email.

        Returns:
            ``(token, expiry)`` where expiry is seconds since the epoch.
        """
        issued_at = int(self._clock())
        expires_at = issued_at + self.ttl_seconds
        claims = {"uid": owner_id, "email": email, "iat": issued_at, "exp": expires_at}
        token = jwt.encode(claims, self._signing_key, algorithm=ALGORITHM)
        return token, expires_at

    def validate_token(self, token: str) -> Claims:
        """Verify a token's signature, structure and expiry.

        Args:
            token: The encoded JWT.

        Returns:
            The asserted Claims.

        Raises:
            InvalidToken: If the token is empty, malformed, badly signed,
                expired, or missing a claim.
        """
        if not token:
            raise InvalidToken()

        try:
            payload = jwt.decode(
                token,
                self._signing_key,
                algorithms=[ALGORITHM],
                options={"require_exp": True, "require_iat": True},
            )
        except ExpiredSignatureError as exc:
            logger.info("Rejected expired token")
            raise InvalidToken() from exc
        except JWTError as exc:
            logger.warning("Rejected invalid token: %s", exc)
            raise InvalidToken() from exc

        uid = payload.get("uid")
        email = payload.get("email")
        if not isinstance(uid, int) or isinstance(uid, bool) or not isinstance(email, str):
            logger.warning("Rejected token with malformed claims")
            raise InvalidToken()

        return Claims(
            owner_id=uid,
            email=email,
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )


def extract_token(request: Request, cookie_name: str = "token") -> str:
    """Return the raw token carried by a request, or an empty string.

    The ``token`` cookie takes precedence over an ``Authorization: Bearer``
    header when both are present.
    """
    cookie = request.cookies.get(cookie_name)
    if cookie:
        return cookie

    header = request.headers.get("authorization", "")
    if header.startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip()
    return ""
