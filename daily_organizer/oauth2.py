"""OAuth2 token lifecycle for the Google Calendar and Tasks APIs."""

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional, Type
from urllib.parse import urlencode

import requests  # type: ignore

from daily_organizer.config import (
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    OAuth2Config,
)
from daily_organizer.errors import (
    ApiRequestError,
    ConfigurationError,
    HttpStatusError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    TokenExchangeError,
    TokenRefreshError,
)
from daily_organizer.storage import (
    CLIENT_ID_KEY,
    CLIENT_SECRET_KEY,
    TOKENS_KEY,
    StateStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Token:
    """Access/refresh token pair with the instant the access token expires."""

    access_token: str
    expires_at: float
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    token_type: str = "Bearer"
    scope: str = ""

    def expires_within(self, seconds: float, now: float) -> bool:
        return now >= self.expires_at - seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            access_token=data.get("access_token") or "",
            expires_at=float(data.get("expires_at") or 0),
            refresh_token=data.get("refresh_token"),
            expires_in=int(data.get("expires_in") or 0),
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
        )

    @classmethod
    def from_response(cls, payload: Dict[str, Any], received_at: float) -> "Token":
        """Build a token from a token-endpoint response body."""
        expires_in = int(payload.get("expires_in", 3600))
        return cls(
            access_token=payload["access_token"],
            expires_at=received_at + expires_in,
            refresh_token=payload.get("refresh_token"),
            expires_in=expires_in,
            token_type=payload.get("token_type", "Bearer"),
            scope=payload.get("scope", ""),
        )


def _is_success(response: Any) -> bool:
    return 200 <= response.status_code < 300


class TokenManager:
    """Produces a currently-valid Google access token on demand.

    The credential (client id/secret) and the single token slot live in a
    ``StateStore``. Signing out removes the token only, so the user can
    reconnect without entering the credential again.
    """

    def __init__(
        self,
        store: StateStore,
        config: Optional[OAuth2Config] = None,
        http: Any = requests,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config: OAuth2Config = config or OAuth2Config()
        self.http = http
        self.clock = clock
        self._refresh_lock = threading.Lock()

    # Credential

    def get_client_id(self) -> str:
        return self.store.get(CLIENT_ID_KEY) or self.config.client_id or ""

    def get_client_secret(self) -> str:
        return self.store.get(CLIENT_SECRET_KEY) or self.config.client_secret or ""

    def has_credentials(self) -> bool:
        return bool(self.get_client_id() and self.get_client_secret())

    def configure(self, client_id: str, client_secret: str) -> None:
        """Persist the OAuth client credential."""
        client_id = (client_id or "").strip()
        client_secret = (client_secret or "").strip()
        if not client_id or not client_secret:
            raise ConfigurationError("Both client_id and client_secret are required")

        self.store.set(CLIENT_ID_KEY, client_id)
        self.store.set(CLIENT_SECRET_KEY, client_secret)
        logger.info("Stored Google OAuth client credential")

    update_credentials = configure

    def credentials_status(self) -> Dict[str, bool]:
        token = self.get_token()
        return {
            "has_credentials": self.has_credentials(),
            "has_tokens": bool(token and token.access_token),
        }

    def _require_credentials(self) -> None:
        if not self.has_credentials():
            raise ConfigurationError(
                "Google OAuth credentials not configured. Run the setup first."
            )

    # Token slot

    def get_token(self) -> Optional[Token]:
        data = self.store.get(TOKENS_KEY)
        if not data:
            return None
        return Token.from_dict(data)

    def _store_token(self, token: Token) -> None:
        self.store.set(TOKENS_KEY, token.to_dict())

    def is_authenticated(self) -> bool:
        token = self.get_token()
        return bool(token and token.access_token) and self.has_credentials()

    def sign_out(self) -> None:
        """Forget the token; the credential is kept for reconnection."""
        self.store.delete(TOKENS_KEY)
        logger.info("Signed out of Google")

    # Authorization code flow

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """Build the consent URL the user must visit.

        ``access_type=offline`` together with ``prompt=consent`` makes Google
        issue a refresh token on every consent.
        """
        client_id = self.get_client_id()
        if not client_id:
            raise ConfigurationError("Google Client ID not configured")

        params = {
            "client_id": client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if state:
            params["state"] = state

        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def _post_token_request(
        self, data: Dict[str, str], error_cls: Type[HttpStatusError]
    ) -> Dict[str, Any]:
        response = self.http.post(GOOGLE_TOKEN_URL, data=data)
        if not _is_success(response):
            raise error_cls(status_code=response.status_code, body=response.text)

        try:
            payload = response.json()
        except ValueError:
            raise error_cls(status_code=response.status_code, body=response.text)
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise error_cls(
                status_code=response.status_code,
                body="Token response did not include an access_token",
            )
        return payload

    def exchange_code_for_tokens(self, code: str) -> Token:
        """Exchange an authorization code for access and refresh tokens.

        Raises:
            ConfigurationError: If the client credential is incomplete
            TokenExchangeError: If the token endpoint rejects the code
        """
        self._require_credentials()

        data = {
            "client_id": self.get_client_id(),
            "client_secret": self.get_client_secret(),
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.config.redirect_uri,
        }

        try:
            payload = self._post_token_request(data, TokenExchangeError)
        except TokenExchangeError as e:
            logger.error(f"Token exchange failed: {e.status_code}")
            raise

        token = Token.from_response(payload, self.clock())
        self._store_token(token)
        if not token.refresh_token:
            logger.warning("Token exchange returned no refresh token")
        logger.info("Successfully obtained Google OAuth tokens")
        return token

    def refresh_access_token(self) -> Token:
        """Refresh the access token with the stored refresh token.

        Google usually omits ``refresh_token`` from refresh responses; the
        previous one is kept in that case.

        Raises:
            NoRefreshTokenError: If no refresh token is stored
            ConfigurationError: If the client credential is incomplete
            TokenRefreshError: If the token endpoint rejects the refresh
        """
        current = self.get_token()
        refresh_token = current.refresh_token if current else None
        if not refresh_token:
            raise NoRefreshTokenError("No refresh token available")

        self._require_credentials()

        logger.info("Refreshing Google access token")

        data = {
            "client_id": self.get_client_id(),
            "client_secret": self.get_client_secret(),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            payload = self._post_token_request(data, TokenRefreshError)
        except TokenRefreshError as e:
            logger.error(f"Failed to refresh token: {e.status_code}")
            if self.config.sign_out_on_revoked and "invalid_grant" in e.body:
                logger.warning("Refresh token was revoked, signing out")
                self.sign_out()
            raise

        token = Token.from_response(payload, self.clock())
        if not token.refresh_token:
            token.refresh_token = refresh_token
        self._store_token(token)
        return token

    def get_valid_access_token(self) -> str:
        """Return an access token that stays valid for at least the buffer."""
        buffer = self.config.refresh_buffer_seconds

        token = self.get_token()
        if token is None:
            raise NotAuthenticatedError("No tokens available")
        if not token.expires_within(buffer, self.clock()):
            return token.access_token

        with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            token = self.get_token()
            if token is None:
                raise NotAuthenticatedError("No tokens available")
            if not token.expires_within(buffer, self.clock()):
                return token.access_token
            return self.refresh_access_token().access_token

    def get_user_info(self) -> Dict[str, Any]:
        """Fetch the signed-in user's Google profile."""
        access_token = self.get_valid_access_token()
        response = self.http.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not _is_success(response):
            logger.error(f"Failed to get user info: {response.status_code}")
            raise ApiRequestError(status_code=response.status_code, body=response.text)
        return response.json()
