"""Credential validation and login against the senselog API."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

import requests

from waterbender.config import settings
from waterbender.data_sources import senselog_client
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="auth")

LOGIN_PATH = "/senselog/Login"
LOGIN_TIMEOUT = 15.0
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
MAX_CREDENTIAL_LENGTH = 100
_FORBIDDEN_USERNAME_CHARS = re.compile(r"[<>\"'%;()&+]")

_STATUS_MESSAGES = {
    400: "Invalid login credentials provided",
    401: "Username or password is incorrect",
    403: "Account access is restricted",
    404: "Authentication service is not available",
    429: "Too many login attempts. Please try again later",
    500: "Server error. Please try again later",
    503: "Authentication service is temporarily unavailable",
}


class AuthenticationError(RuntimeError):
    """Login was rejected or could not be attempted."""


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    display_username: str


@dataclass(frozen=True)
class LoginResult:
    username: str
    display_name: str
    user: Any = None
    token: Optional[str] = None


def validate_and_sanitize_credentials(username: Any, password: Any) -> Credentials:
    """
    Check lengths and characters, returning the lower-cased username.

    The password is passed through untouched; the as-typed username is
    kept for display.
    """
    if not username or not isinstance(username, str):
        raise AuthenticationError("Username is required")
    if len(username) < MIN_USERNAME_LENGTH:
        raise AuthenticationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if len(username) > MAX_CREDENTIAL_LENGTH:
        raise AuthenticationError(f"Username must not exceed {MAX_CREDENTIAL_LENGTH} characters")

    if not password or not isinstance(password, str):
        raise AuthenticationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthenticationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_CREDENTIAL_LENGTH:
        raise AuthenticationError(f"Password must not exceed {MAX_CREDENTIAL_LENGTH} characters")

    sanitized = username.strip().lower()
    if _FORBIDDEN_USERNAME_CHARS.search(sanitized):
        raise AuthenticationError("Username contains invalid characters")
    return Credentials(username=sanitized, password=password, display_username=username.strip())


def status_message(status_code: int) -> str:
    """User-facing message for a failed login status."""
    return _STATUS_MESSAGES.get(status_code, f"Authentication failed (Error {status_code})")


def _validate_auth_response(body: Any) -> dict:
    if not body:
        raise AuthenticationError("No response received from authentication server")
    if not isinstance(body, dict):
        raise AuthenticationError("Authentication failed")
    error = body.get("error") or body.get("Error")
    if error:
        raise AuthenticationError(error if isinstance(error, str) else "Authentication failed")
    if not any(body.get(k) for k in ("User", "user", "token", "Token")):
        logger.warning("Authentication response missing user data", extra={"keys": sorted(body)})
    return body


def login(
    username: Any,
    password: Any,
    *,
    base_url: Optional[str] = None,
    timeout: float = LOGIN_TIMEOUT,
) -> LoginResult:
    """Authenticate against the senselog API. Raises AuthenticationError on any failure."""
    creds = validate_and_sanitize_credentials(username, password)
    url = f"{(base_url or settings.api_base_url).rstrip('/')}{LOGIN_PATH}"
    logger.info("Starting authentication request", extra={"username": creds.username})

    try:
        resp = senselog_client.session.post(
            url,
            json={"username": creds.username, "password": creds.password},
            timeout=timeout,
        )
    except requests.Timeout as exc:
        raise AuthenticationError("Login request timed out. Please try again") from exc
    except requests.ConnectionError as exc:
        raise AuthenticationError("Network connection failed. Please check your internet connection") from exc

    if not 200 <= resp.status_code < 300:
        logger.warning("Authentication rejected", extra={"username": creds.username, "status": resp.status_code})
        raise AuthenticationError(status_message(resp.status_code))

    try:
        body = resp.json()
    except ValueError as exc:
        raise AuthenticationError("No response received from authentication server") from exc
    body = _validate_auth_response(body)

    user = body.get("User") or body.get("user")
    token = body.get("token") or body.get("Token")
    logger.info("Authentication successful", extra={"username": creds.username, "has_token": bool(token)})
    return LoginResult(username=creds.username, display_name=creds.display_username, user=user, token=token)
