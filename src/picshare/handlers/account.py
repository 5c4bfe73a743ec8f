"""Account request handlers for PicShare.

Implements:
    - Register (POST /register): form fields firstname, lastname, email, password
    - Authenticate (GET /auth): HTTP basic auth with email and password

Both return a fresh token in the body and in the ``token`` cookie.
"""

import base64
import binascii
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from picshare.credentials import CredentialStore
from picshare.errors import InvalidCredentials
from picshare.tokens import TokenService

logger = logging.getLogger(__name__)


def parse_basic_auth(header: str) -> tuple[str, str]:
    """Split an ``Authorization: Basic`` header into (email, password).

    Raises:
        InvalidCredentials: If the header is absent or malformed.
    """
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        raise InvalidCredentials()
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise InvalidCredentials() from exc
    email, sep, password = decoded.partition(":")
    if not sep:
        raise InvalidCredentials()
    return email, password


class AccountHandler:
    """Handles registration and login.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    @property
    def metadata(self):
        """Shortcut to the metadata store on app.state."""
        return self.app.state.metadata

    @property
    def config(self):
        """Shortcut to the PicShareConfig on app.state."""
        return self.app.state.config

    @property
    def tokens(self) -> TokenService:
        """Shortcut to the TokenService on app.state."""
        return self.app.state.tokens

    def _credentials(self) -> CredentialStore:
        return CredentialStore(self.metadata, rounds=self.config.auth.bcrypt_rounds)

    def _token_response(self, owner_id: int, email: str) -> Response:
        token, expiry = self.tokens.issue_token(owner_id, email)
        expires = datetime.fromtimestamp(expiry, tz=timezone.utc)
        response = JSONResponse(
            content={"name": "token", "token": token, "expiration": expires.isoformat()}
        )
        response.set_cookie(
            key=self.config.auth.cookie_name,
            value=token,
            expires=expires,
            httponly=True,
            samesite="lax",
        )
        return response

    async def register(self, request: Request) -> Response:
        """Create an account and return a token.

        Implements: POST /register

        Returns:
            200 with the token JSON on success.
        """
        form = await request.form()
        account = await self._credentials().register_account(
            firstname=str(form.get("firstname") or ""),
            lastname=str(form.get("lastname") or ""),
            email=str(form.get("email") or ""),
            password=str(form.get("password") or ""),
        )
        return self._token_response(account.id, account.email)

    async def authenticate(self, request: Request) -> Response:
        """Verify basic-auth credentials and return a token.

        Implements: GET /auth

        Returns:
            200 with the token JSON on success, 401 otherwise.
        """
        email, password = parse_basic_auth(request.headers.get("authorization", ""))
        account = await self._credentials().verify_credential(email, password)
        logger.info("Successful login for account %d", account.id)
        return self._token_response(account.id, account.email)
