"""Exceptions raised by the token manager and the Calendar/Tasks client."""


class OrganizerError(RuntimeError):
    """Base error for Google integration failures."""


class ConfigurationError(OrganizerError):
    """Raised when the OAuth client credential is missing or incomplete."""


class NotAuthenticatedError(OrganizerError):
    """Raised when an API call is attempted without a stored token."""


class NoRefreshTokenError(OrganizerError):
    """Raised when a refresh is attempted without a stored refresh token."""


class AuthorizationError(OrganizerError):
    """Raised when the consent redirect carries an error or no code."""


class HttpStatusError(OrganizerError):
    """Raised when Google answers with a non-2xx status."""

    action = "Request"

    def __init__(self, *, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"{self.action} failed ({status_code}): {body}")


class TokenExchangeError(HttpStatusError):
    action = "Token exchange"


class TokenRefreshError(HttpStatusError):
    action = "Token refresh"


class ApiRequestError(HttpStatusError):
    action = "API request"
