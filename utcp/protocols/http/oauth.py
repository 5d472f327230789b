"""OAuth2 client-credentials token fetching with an in-memory cache."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from utcp.data.auth import OAuth2Auth
from utcp.exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


@dataclass
class CachedToken:
    access_token: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at


class OAuth2TokenProvider:
    """
    Fetches and caches client-credentials tokens, keyed by client id.

    A fresh token is requested two ways at once, credentials in the form body
    and credentials in a Basic auth header, and the first success is used.
    Servers differ in which of the two they accept.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0):
        self._transport = transport
        self._timeout = timeout
        self._tokens: Dict[str, CachedToken] = {}

    async def get_token(self, auth: OAuth2Auth) -> str:
        cached = self._tokens.get(auth.client_id)
        if cached is not None and not cached.expired:
            return cached.access_token

        logger.info("Fetching new OAuth2 token for client '%s'", auth.client_id)
        tasks = [
            asyncio.create_task(self._request_token(auth, credentials_in_body=True)),
            asyncio.create_task(self._request_token(auth, credentials_in_body=False)),
        ]
        errors: List[str] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    token = await next_done
                except (httpx.HTTPError, TransportError, ValueError) as exc:
                    errors.append(str(exc) or type(exc).__name__)
                    continue
                self._tokens[auth.client_id] = token
                return token.access_token
        finally:
            for task in tasks:
                task.cancel()

        raise TransportError(
            f"Failed to fetch OAuth2 token for client '{auth.client_id}' after trying all methods. "
            f"Details: {'; '.join(errors)}"
        )

    async def _request_token(self, auth: OAuth2Auth, credentials_in_body: bool) -> CachedToken:
        form: Dict[str, str] = {"grant_type": "client_credentials", "scope": auth.scope or ""}
        request_kwargs: Dict[str, Any] = {}
        if credentials_in_body:
            form["client_id"] = auth.client_id
            form["client_secret"] = auth.client_secret
        else:
            request_kwargs["auth"] = httpx.BasicAuth(auth.client_id, auth.client_secret)

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.post(auth.token_url, data=form, **request_kwargs)
        if response.is_error:
            raise TransportError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        payload = response.json()
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise TransportError("Access token not found in response.")

        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        return CachedToken(access_token=access_token, expires_at=time.time() + float(expires_in))

    def clear(self) -> None:
        self._tokens.clear()
