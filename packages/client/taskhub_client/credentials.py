"""
Credential store.

Keeps the access/refresh token pair in the HTTP client's own cookie jar under
fixed names, so the refresh token rides along on the refresh call the same
way a browser would send it. Only the session interceptor writes here.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

import httpx

from taskhub_shared.schemas.auth import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE


class Credentials(NamedTuple):
    access_token: Optional[str]
    refresh_token: Optional[str]


class CredentialStore:
    def __init__(self, cookies: httpx.Cookies):
        self._cookies = cookies

    def _read(self, name: str) -> Optional[str]:
        # Not Cookies.get(): that raises CookieConflict while a server-set
        # cookie and ours briefly coexist under different domains.
        for cookie in self._cookies.jar:
            if cookie.name == name:
                return cookie.value
        return None

    def _write(self, name: str, value: str) -> None:
        self._cookies.delete(name)
        self._cookies.set(name, value)

    def get(self) -> Credentials:
        return Credentials(self._read(ACCESS_TOKEN_COOKIE), self._read(REFRESH_TOKEN_COOKIE))

    @property
    def access_token(self) -> Optional[str]:
        return self._read(ACCESS_TOKEN_COOKIE)

    @property
    def refresh_token(self) -> Optional[str]:
        return self._read(REFRESH_TOKEN_COOKIE)

    def has_any(self) -> bool:
        return any(self.get())

    def set(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        """Store whichever tokens are given; a None leaves the stored one alone."""
        if access_token is not None:
            self._write(ACCESS_TOKEN_COOKIE, access_token)
        if refresh_token is not None:
            self._write(REFRESH_TOKEN_COOKIE, refresh_token)

    def clear(self) -> None:
        self._cookies.delete(ACCESS_TOKEN_COOKIE)
        self._cookies.delete(REFRESH_TOKEN_COOKIE)
