"""Command-line tool for connecting the daily organizer to Google."""

import argparse
import json
import logging
import secrets
import sys
import threading
import time
import webbrowser
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from flask import Flask, request

from daily_organizer.config import OrganizerConfig, load_config
from daily_organizer.errors import AuthorizationError, OrganizerError
from daily_organizer.oauth2 import TokenManager
from daily_organizer.storage import JsonFileStore

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_TIMEOUT = 5 * 60
RESPONSE_GRACE_SECONDS = 1

SUCCESS_PAGE = """
<html>
<head><title>Authentication Successful</title></head>
<body>
    <h1>Google Calendar connected</h1>
    <p>You may now close this browser window and return to the terminal.</p>
</body>
</html>
"""


def load_client_credentials(credentials_file: str) -> Tuple[str, str]:
    """Load client credentials from the JSON file downloaded from Google Cloud Console."""
    if not credentials_file:
        raise ValueError("No credentials file specified")

    credentials_path = Path(credentials_file)
    if not credentials_path.exists():
        raise FileNotFoundError(f"Credentials file not found: {credentials_file}")

    with open(credentials_path) as f:
        try:
            credentials = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Invalid JSON in credentials file: {credentials_file}. Error: {str(e)}"
            )

    if "installed" in credentials:
        client_config = credentials["installed"]
    elif "web" in credentials:
        client_config = credentials["web"]
    else:
        raise ValueError(f"Invalid credentials format in {credentials_file}")

    client_id = client_config.get("client_id")
    client_secret = client_config.get("client_secret")

    if not client_id or not client_secret:
        raise ValueError(f"Missing client_id or client_secret in {credentials_file}")

    return client_id, client_secret


def extract_authorization_code(
    redirect_url: str, expected_state: Optional[str] = None
) -> str:
    """Pull the authorization code out of the consent redirect URL."""
    query_params = parse_qs(urlparse(redirect_url).query)

    error = query_params.get("error", [None])[0]
    if error:
        raise AuthorizationError(f"Google returned an OAuth error: {error}")

    if expected_state is not None:
        state = query_params.get("state", [None])[0]
        if state != expected_state:
            raise AuthorizationError("OAuth state mismatch")

    code = query_params.get("code", [None])[0]
    if not code:
        raise AuthorizationError("No authorization code received")
    return code


def build_token_manager(config: OrganizerConfig) -> TokenManager:
    store = JsonFileStore(config.storage.state_path)
    return TokenManager(store, config.oauth2)


def create_oauth_app(
    manager: TokenManager, state: Optional[str], done: threading.Event
) -> Flask:
    """Create the Flask app that receives the consent redirect.

    Requests whose ``state`` does not match are refused without ending the
    login, so a stale tab or a prefetch cannot cut the wait short.
    """
    app = Flask(__name__)
    callback_path = urlparse(manager.config.redirect_uri).path or "/"

    @app.route(callback_path)
    def oauth2callback():
        if state is not None and request.args.get("state") != state:
            logger.warning("Ignoring auth callback with missing or mismatched state")
            return "Error: OAuth state mismatch", 400

        try:
            code = extract_authorization_code(request.url, expected_state=state)
            manager.exchange_code_for_tokens(code)
        except OrganizerError as e:
            logger.error(f"Auth callback error: {e}")
            app.config["auth_error"] = e
            done.set()
            return f"Error: {e}", 400

        done.set()
        return SUCCESS_PAGE

    return app


def _run_manual_flow(
    manager: TokenManager,
    auth_url: str,
    state: str,
    read_input: Callable[[str], str] = input,
) -> None:
    """Manual OAuth flow where the user pastes the redirect URL."""
    print("\n1. Open this URL in your browser:\n")
    print(auth_url)
    print("\n2. Complete the authentication in your browser.")
    print("\n3. You will be redirected to a URL that may not load.")
    print("   Copy the ENTIRE URL from your browser's address bar.")

    redirect_response = read_input("\nPaste the full redirect URL here: ").strip()
    if not redirect_response:
        raise AuthorizationError("No redirect URL provided")

    code = extract_authorization_code(redirect_response, expected_state=state)
    manager.exchange_code_for_tokens(code)


def _run_server_flow(
    manager: TokenManager, auth_url: str, state: str, timeout: int
) -> None:
    """Browser OAuth flow with a local callback server."""
    from werkzeug.serving import make_server

    done = threading.Event()
    app = create_oauth_app(manager, state, done)

    parsed = urlparse(manager.config.redirect_uri)
    host = parsed.hostname or "localhost"
    port = parsed.port or 80

    server = make_server(host, port, app, threaded=True)
    server.timeout = 0.5
    server_should_stop = threading.Event()

    def run_server():
        while not server_should_stop.is_set():
            server.handle_request()

    server_thread = threading.Thread(target=run_server, daemon=True)
    server_thread.start()

    print("\nOpening browser for Google authentication...")
    webbrowser.open(auth_url)
    print(f"\nWaiting for authentication at {manager.config.redirect_uri}")

    try:
        if not done.wait(timeout):
            raise AuthorizationError("Authentication timed out. Please try again.")
        # Let the server thread finish writing the callback response.
        time.sleep(RESPONSE_GRACE_SECONDS)
    finally:
        server_should_stop.set()
        server_thread.join(timeout=5)
        server.server_close()

    error = app.config.get("auth_error")
    if error is not None:
        raise error


def cmd_configure(manager: TokenManager, args: argparse.Namespace) -> int:
    client_id, client_secret = args.client_id, args.client_secret
    if args.credentials_file and not (client_id and client_secret):
        logger.info(f"Loading credentials from {args.credentials_file}")
        client_id, client_secret = load_client_credentials(args.credentials_file)

    manager.configure(client_id, client_secret)
    print("Google OAuth credentials saved. Run 'login' to connect your account.")
    return 0


def cmd_login(manager: TokenManager, args: argparse.Namespace) -> int:
    state = secrets.token_urlsafe(16)
    auth_url = manager.get_authorization_url(state=state)

    if args.browser:
        _run_server_flow(manager, auth_url, state, args.timeout)
    else:
        _run_manual_flow(manager, auth_url, state)

    print("\nAuthentication successful!")
    return 0


def cmd_status(manager: TokenManager, args: argparse.Namespace) -> int:
    status = manager.credentials_status()
    print(f"Credentials configured: {'yes' if status['has_credentials'] else 'no'}")
    print(f"Signed in: {'yes' if manager.is_authenticated() else 'no'}")

    token = manager.get_token()
    if token is not None:
        remaining = int(token.expires_at - time.time())
        print(f"Access token expires in: {max(remaining, 0)}s")

    if manager.is_authenticated():
        info = manager.get_user_info()
        print(f"Google account: {info.get('email', 'unknown')}")
    return 0


def cmd_logout(manager: TokenManager, args: argparse.Namespace) -> int:
    manager.sign_out()
    print("Signed out. Credentials were kept for reconnection.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Connect the daily organizer to Google Calendar and Tasks"
    )
    parser.add_argument("--config", help="Path to config file", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    configure = subparsers.add_parser(
        "configure", help="Store the OAuth client ID and secret"
    )
    configure.add_argument("--client-id", help="Google API client ID")
    configure.add_argument(
        "--client-secret",
        help="Google API client secret. Use = syntax if secret starts with hyphen: --client-secret=-xyz",
    )
    configure.add_argument(
        "--credentials-file",
        help="Path to the OAuth2 client credentials JSON file downloaded from Google Cloud Console",
    )
    configure.set_defaults(handler=cmd_configure)

    login = subparsers.add_parser("login", help="Run the Google consent flow")
    login.add_argument(
        "--browser",
        action="store_true",
        help="Open a browser and catch the redirect with a local server",
    )
    login.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_LOGIN_TIMEOUT,
        help="Seconds to wait for the browser redirect",
    )
    login.set_defaults(handler=cmd_login)

    status = subparsers.add_parser("status", help="Show connection status")
    status.set_defaults(handler=cmd_status)

    logout = subparsers.add_parser("logout", help="Forget the stored token")
    logout.set_defaults(handler=cmd_logout)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the Google connection tool."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    logging.basicConfig(level=config.log_level)
    manager = build_token_manager(config)

    try:
        return args.handler(manager, args)
    except (OrganizerError, ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
