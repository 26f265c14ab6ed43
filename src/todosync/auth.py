from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import get_settings

_security = HTTPBasic(auto_error=False)


def _unauthorized(detail: str, basic: bool = True) -> HTTPException:
    headers = {"WWW-Authenticate": "Basic"} if basic else None
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=headers)


# PUBLIC_INTERFACE
def get_current_user_dependency():
    """
    Return a FastAPI dependency callable resolving the id of the calling user.

    Behavior:
    - If settings.enable_basic_auth is False (default): the user id is read from
      the X-User-Id header; a missing or blank header is rejected with 401.
    - If True: credentials are checked against BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD
      and the username is the user id. Missing or invalid credentials give 401
      with WWW-Authenticate: Basic.

    Usage:
        current_user = get_current_user_dependency()
        @router.post("/")
        def create(..., user_id: str = Depends(current_user)): ...
    """
    settings = get_settings()

    if not settings.enable_basic_auth:
        async def _from_header(x_user_id: Optional[str] = Header(default=None)) -> str:
            """Identify the caller by the X-User-Id header."""
            if x_user_id is None or not x_user_id.strip():
                raise _unauthorized("Missing X-User-Id header", basic=False)
            return x_user_id.strip()

        return _from_header

    expected_user: Optional[str] = settings.basic_auth_username
    expected_pass: Optional[str] = settings.basic_auth_password

    async def _enforce(creds: Optional[HTTPBasicCredentials] = Depends(_security)) -> str:
        """
        Enforce HTTP Basic authentication and return the username.

        Raises:
            HTTPException(401) if credentials are missing or invalid.
        """
        if creds is None or creds.username is None or creds.password is None:
            raise _unauthorized("Not authenticated")

        if expected_user is None or expected_pass is None:
            # Misconfiguration: auth enabled but username/password not provided
            raise _unauthorized("Server authentication not configured")

        if not (creds.username == expected_user and creds.password == expected_pass):
            raise _unauthorized("Invalid authentication credentials")
        return creds.username

    return _enforce
