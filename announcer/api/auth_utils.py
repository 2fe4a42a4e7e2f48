import os
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from fastapi import Request, Response
from jose import jwt

from announcer.components.host.models import LoginLevel

SECRET_KEY = os.environ.get("ANNOUNCER_SECRET_KEY", "dev-secret-unsafe")
ALGORITHM = "HS256"
DEFAULT_LOGIN_MINUTES = 60 * 24  # 24 hours


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode in the token
        expires_delta: Optional custom expiration delta
        now_utc: Current UTC time (for testing/determinism). Defaults to datetime.now(UTC).
    """
    to_encode = data.copy()
    current_time = now_utc if now_utc is not None else datetime.now(UTC)

    if expires_delta:
        expire = current_time + expires_delta
    else:
        expire = current_time + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    encoded_jwt: str = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return cast(dict[str, Any], payload)
    except jwt.JWTError:
        return None


# --- Tenant login cookies ---


def cookie_name(key: str, level: LoginLevel) -> str:
    return f"{key}#{level.value}"


def set_login_cookie(
    response: Response, key: str, level: LoginLevel, minutes: int = DEFAULT_LOGIN_MINUTES
) -> None:
    name = cookie_name(key, level)
    token = create_access_token({"sub": name}, timedelta(minutes=minutes))
    response.set_cookie(
        name,
        token,
        max_age=minutes * 60,
        httponly=True,
        samesite="lax",
        path=f"/{key}/",
    )


def clear_login_cookies(response: Response, key: str) -> None:
    for level in LoginLevel:
        response.delete_cookie(cookie_name(key, level), path=f"/{key}/")


def _has_valid_cookie(request: Request, name: str) -> bool:
    token = request.cookies.get(name)
    if not token:
        return False
    payload = decode_access_token(token)
    return payload is not None and payload.get("sub") == name


def is_admin(request: Request, key: str) -> bool:
    return _has_valid_cookie(request, cookie_name(key, LoginLevel.ADMIN))


def is_logged_in(request: Request, key: str) -> bool:
    """User-level access; an admin login implies it."""
    return is_admin(request, key) or _has_valid_cookie(request, cookie_name(key, LoginLevel.USER))


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    # Check X-Forwarded-For header (proxy)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    # Fallback to direct client IP
    return request.client.host if request.client else "unknown"
