"""
Session context and the request interceptor.

``SessionContext`` owns the HTTP client and the credential store. It is
passed around explicitly and reference counted: every user retains it, and
the underlying connection pool closes when the last one releases it.

``SessionClient`` is the only writer of credentials. Every request it sends
carries the current access token; when the server answers with an
authentication failure it refreshes once and replays once:

- refresh succeeds: store the new access token, replay, return the replay;
- refresh fails with "jwt expired": the session is over, credentials are
  cleared and the original error is raised;
- refresh fails any other way: that error is raised, credentials are kept.

Concurrent requests each refresh on their own; refreshes are not coalesced
across requests.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Optional

import httpx
import structlog

from taskhub_shared.schemas.auth import (
    REFRESH_TOKEN_COOKIE,
    TOKEN_EXPIRED_MESSAGE,
    TOKEN_MISSING_MESSAGE,
)

from .config import ClientConfig
from .credentials import CredentialStore
from .errors import ApiError, AuthenticationRequired, error_from_response

log = structlog.get_logger()

RETRYABLE_MESSAGES = frozenset({TOKEN_EXPIRED_MESSAGE, TOKEN_MISSING_MESSAGE})


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESH_IN_FLIGHT = "refresh_in_flight"
    FAILED = "failed"


def is_authentication_failure(error: ApiError) -> bool:
    return error.status_code == 401 or error.message in RETRYABLE_MESSAGES


def _consume_result(task: asyncio.Task) -> None:
    # The caller may have gone away; don't let an unread exception warn.
    if not task.cancelled():
        task.exception()


# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------

class SessionContext:
    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.state = SessionState.UNAUTHENTICATED
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._credentials: Optional[CredentialStore] = None
        self._refs = 0
        self._refreshes = 0

    @property
    def refs(self) -> int:
        return self._refs

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Session context is not open; retain it first")
        return self._client

    @property
    def credentials(self) -> CredentialStore:
        if self._credentials is None:
            raise RuntimeError("Session context is not open; retain it first")
        return self._credentials

    async def retain(self) -> "SessionContext":
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                verify=self.config.verify_tls,
                transport=self._transport,
            )
            self._credentials = CredentialStore(self._client.cookies)
        self._refs += 1
        return self

    async def release(self) -> None:
        if self._refs == 0:
            raise RuntimeError("Session context released more times than retained")
        self._refs -= 1
        if self._refs == 0 and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._credentials = None
            self._refreshes = 0
            self.state = SessionState.UNAUTHENTICATED

    def begin_refresh(self) -> None:
        self._refreshes += 1
        self.state = SessionState.REFRESH_IN_FLIGHT

    def end_refresh(self, outcome: Optional[SessionState] = None) -> None:
        """Settle the state when a refresh finishes.

        ``outcome`` is the state the refresh decided on. Without one, a FAILED
        session stays failed, other refreshes still running keep the state in
        flight, and otherwise it follows the stored credentials.
        """
        self._refreshes = max(self._refreshes - 1, 0)
        if outcome is not None:
            self.state = outcome
        elif self.state is SessionState.FAILED:
            return
        elif self._refreshes:
            self.state = SessionState.REFRESH_IN_FLIGHT
        elif self._credentials is not None and self._credentials.has_any():
            self.state = SessionState.AUTHENTICATED
        else:
            self.state = SessionState.UNAUTHENTICATED

    async def __aenter__(self) -> "SessionContext":
        return await self.retain()

    async def __aexit__(self, *exc_info) -> None:
        await self.release()


# ---------------------------------------------------------------------------
# Interceptor
# ---------------------------------------------------------------------------

class SessionClient:
    def __init__(self, context: SessionContext):
        self._context = context

    async def __aenter__(self) -> "SessionClient":
        await self._context.retain()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._context.release()

    @property
    def state(self) -> SessionState:
        return self._context.state

    @property
    def credentials(self) -> CredentialStore:
        return self._context.credentials

    # --- Transport ---

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        authenticate: bool = True,
    ) -> httpx.Response:
        headers = {}
        token = self.credentials.access_token if authenticate else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self._context.client.request(
            method, path, json=json, params=params, headers=headers
        )
        if response.is_error:
            raise error_from_response(response)
        return response

    def _store_session(self, response: httpx.Response, access_token: str) -> None:
        refresh_token = None
        for cookie in response.cookies.jar:
            if cookie.name == REFRESH_TOKEN_COOKIE:
                refresh_token = cookie.value
        self.credentials.set(access_token=access_token, refresh_token=refresh_token)
        self._context.state = SessionState.AUTHENTICATED

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- Requests ---

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Send an authenticated request, refreshing the session at most once."""
        if not self.credentials.has_any():
            self._context.state = SessionState.UNAUTHENTICATED
            raise AuthenticationRequired(401, "unauthenticated", TOKEN_MISSING_MESSAGE)

        try:
            response = await self._send(method, path, json=json, params=params)
            return self._decode(response)
        except ApiError as exc:
            if not is_authentication_failure(exc):
                raise
            original = exc

        log.info("session.retrying", method=method, path=path, reason=original.message)
        # Shielded so an abandoned caller does not cut the refresh short.
        task = asyncio.ensure_future(
            self._refresh_and_replay(original, method, path, json=json, params=params)
        )
        task.add_done_callback(_consume_result)
        return await asyncio.shield(task)

    async def _refresh_and_replay(
        self,
        original: ApiError,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        try:
            await self.refresh()
        except ApiError as exc:
            if exc.message == TOKEN_EXPIRED_MESSAGE:
                raise original from exc
            raise

        response = await self._send(method, path, json=json, params=params)
        return self._decode(response)

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    # --- Session lifecycle ---

    async def login(self, email: str, password: str) -> dict:
        response = await self._send(
            "POST", "/auth/login", json={"email": email, "password": password}, authenticate=False
        )
        data = response.json()
        self._store_session(response, data["accessToken"])
        log.info("session.logged_in", user_id=data["user"]["id"])
        return data["user"]

    async def register(self, email: str, password: str, name: Optional[str] = None) -> dict:
        response = await self._send(
            "POST",
            "/auth/register",
            json={"email": email, "password": password, "name": name},
            authenticate=False,
        )
        data = response.json()
        self._store_session(response, data["accessToken"])
        log.info("session.registered", user_id=data["user"]["id"])
        return data["user"]

    async def refresh(self) -> str:
        """Exchange the stored refresh token for a new access token.

        An expired refresh token ends the session: credentials are cleared
        and the state becomes FAILED. Any other failure leaves both alone.
        """
        self._context.begin_refresh()
        try:
            response = await self._send("POST", self._context.config.refresh_path, authenticate=False)
            access_token = response.json()["accessToken"]
        except ApiError as exc:
            if exc.message == TOKEN_EXPIRED_MESSAGE:
                self.credentials.clear()
                self._context.end_refresh(SessionState.FAILED)
                log.warning("session.expired")
            else:
                self._context.end_refresh()
                log.warning("session.refresh_failed", status=exc.status_code, reason=exc.message)
            raise
        except BaseException:
            self._context.end_refresh()
            raise

        self._store_session(response, access_token)
        self._context.end_refresh(SessionState.AUTHENTICATED)
        log.info("session.refreshed")
        return access_token

    async def logout(self) -> None:
        """End the session on the server and forget the local credentials."""
        try:
            await self._send("POST", "/auth/logout", authenticate=False)
        finally:
            self.credentials.clear()
            self._context.state = SessionState.UNAUTHENTICATED
            log.info("session.logged_out")
