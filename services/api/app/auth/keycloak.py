"""Keycloak glue: password-grant login, userinfo token checks and user creation through the admin API."""
import logging
import re

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


class IdentityProviderError(Exception):
    """Keycloak refused a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RegistrationError(ValueError):
    """Registration form input is not acceptable."""


def _client() -> httpx.Client:
    return httpx.Client(timeout=settings.keycloak_timeout_seconds)


def _token_url() -> str:
    base = settings.keycloak_base_url.rstrip("/")
    return f"{base}/realms/{settings.keycloak_realm}/protocol/openid-connect/token"


def _users_url() -> str:
    base = settings.keycloak_base_url.rstrip("/")
    return f"{base}/admin/realms/{settings.keycloak_realm}/users"


def _password_grant(client_id: str, username: str, password: str) -> dict:
    form = {
        "grant_type": "password",
        "client_id": client_id,
        "username": username,
        "password": password,
    }
    try:
        with _client() as client:
            r = client.post(_token_url(), data=form)
    except httpx.HTTPError as e:
        logger.warning("keycloak/token: request failed: %s", e)
        raise IdentityProviderError(f"Identity provider unreachable: {e}") from e
    try:
        data = r.json()
    except ValueError:
        data = {}
    if r.status_code != 200:
        message = data.get("error_description") or data.get("error") or "Login failed"
        logger.info("keycloak/token: client=%s status=%d error=%s", client_id, r.status_code, message)
        raise IdentityProviderError(message, status_code=r.status_code)
    return data


def login_with_password(username: str, password: str) -> dict:
    """Password grant for the public web client. Returns the raw token response."""
    logger.info("keycloak/login: username=%s", username)
    return _password_grant(settings.keycloak_client_id, username, password)


def get_admin_token() -> str:
    if not settings.keycloak_admin_username or not settings.keycloak_admin_password:
        raise IdentityProviderError("Keycloak admin credentials are not configured")
    data = _password_grant(
        settings.keycloak_admin_client_id,
        settings.keycloak_admin_username,
        settings.keycloak_admin_password,
    )
    token = data.get("access_token")
    if not token:
        raise IdentityProviderError("Failed to get admin token")
    return token


def validate_registration(
    first_name: str, last_name: str, email: str, password: str, confirm_password: str
) -> None:
    if not (email and password and first_name and last_name):
        raise RegistrationError("All fields are required")
    if not EMAIL_RE.match(email):
        raise RegistrationError("Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise RegistrationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != confirm_password:
        raise RegistrationError("Passwords do not match")


def register_user(first_name: str, last_name: str, email: str, password: str) -> None:
    """Create an enabled user with a permanent password. Email verification is skipped."""
    token = get_admin_token()
    payload = {
        "username": email,
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
        "enabled": True,
        "emailVerified": True,
        "credentials": [{"type": "password", "value": password, "temporary": False}],
    }
    try:
        with _client() as client:
            r = client.post(
                _users_url(),
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.warning("keycloak/register: request failed: %s", e)
        raise IdentityProviderError(f"Identity provider unreachable: {e}") from e
    if r.status_code not in (200, 201):
        logger.warning("keycloak/register: email=%s status=%d body=%s", email, r.status_code, r.text[:200])
        if r.status_code == 409:
            raise RegistrationError("An account with this email already exists")
        raise IdentityProviderError(r.text or "Registration failed", status_code=r.status_code)
    logger.info("keycloak/register: created user email=%s", email)


def fetch_userinfo(access_token: str) -> dict:
    """Ask Keycloak who an access token belongs to. Forged, revoked or expired tokens raise."""
    if not access_token:
        raise IdentityProviderError("Missing access token", status_code=401)
    base = settings.keycloak_base_url.rstrip("/")
    url = f"{base}/realms/{settings.keycloak_realm}/protocol/openid-connect/userinfo"
    try:
        with _client() as client:
            r = client.get(url, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as e:
        logger.warning("keycloak/userinfo: request failed: %s", e)
        raise IdentityProviderError(f"Identity provider unreachable: {e}") from e
    if r.status_code != 200:
        logger.info("keycloak/userinfo: token rejected status=%d", r.status_code)
        raise IdentityProviderError("Invalid or expired token", status_code=r.status_code)
    data = r.json()
    logger.info("keycloak/userinfo: sub=%s", data.get("sub"))
    return data
