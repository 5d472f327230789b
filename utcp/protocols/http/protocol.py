"""HTTP communication protocol."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import yaml

from utcp.data.auth import ApiKeyAuth, BasicAuth, OAuth2Auth
from utcp.data.call_template import CallTemplate
from utcp.data.manual import RegisterManualResult, UtcpManual
from utcp.exceptions import TransportError
from utcp.protocols.base import CommunicationProtocol
from utcp.protocols.http.call_template import HttpCallTemplate
from utcp.protocols.http.oauth import OAuth2TokenProvider
from utcp.protocols.http.openapi import manual_from_document

logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 10.0
_PATH_PARAM_PATTERN = re.compile(r"\{([^}]+)\}")
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


def check_url_security(url: str) -> None:
    """Only HTTPS, or plain HTTP to the local machine, may carry credentials."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise TransportError(f"Security error: invalid URL '{url}': {exc}") from exc
    if parsed.scheme != "https" and not (parsed.scheme == "http" and parsed.host in _LOCAL_HOSTS):
        raise TransportError(
            f"Security error: URL must use HTTPS or point at 'http://localhost' or 'http://127.0.0.1'. Got: {url}. "
            "Non-secure URLs are vulnerable to man-in-the-middle attacks."
        )


def build_url_with_path_params(url_template: str, args: Dict[str, Any]) -> str:
    """Fill ``{name}`` placeholders from ``args``, removing the used entries."""
    url = url_template
    for name in _PATH_PARAM_PATTERN.findall(url_template):
        if name not in args:
            raise ValueError(f"Missing required path parameter: {name}")
        url = url.replace("{" + name + "}", quote(str(args.pop(name)), safe=""), 1)

    leftover = _PATH_PARAM_PATTERN.findall(url)
    if leftover:
        raise ValueError(f"Missing required path parameters in URL template: {', '.join(leftover)}")
    return url


def _is_yaml(response: httpx.Response, url: str) -> bool:
    content_type = response.headers.get("content-type", "")
    return "yaml" in content_type or url.endswith((".yaml", ".yml"))


class HttpCommunicationProtocol(CommunicationProtocol):
    """
    Discovers manuals over HTTP and calls HTTP tools.

    Parameters
    ----------
    transport : optional httpx transport shared by every request, e.g.
        ``httpx.MockTransport`` in tests
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._oauth = OAuth2TokenProvider(transport=transport)

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout, follow_redirects=True)

    @staticmethod
    def _as_http_template(template: CallTemplate) -> HttpCallTemplate:
        if isinstance(template, HttpCallTemplate):
            return template
        return HttpCallTemplate.model_validate(template.model_dump())

    # ── Auth ──────────────────────────────────────────────────────────────

    async def _apply_auth(
        self,
        template: HttpCallTemplate,
        headers: Dict[str, str],
        params: Dict[str, Any],
    ) -> Optional[httpx.Auth]:
        auth = template.auth
        if isinstance(auth, ApiKeyAuth):
            if not auth.api_key:
                raise ValueError("API key for ApiKeyAuth is empty.")
            if auth.location == "header":
                headers[auth.var_name] = auth.api_key
            elif auth.location == "query":
                params[auth.var_name] = auth.api_key
            else:
                cookie = f"{auth.var_name}={auth.api_key}"
                headers["Cookie"] = f"{headers['Cookie']}; {cookie}" if headers.get("Cookie") else cookie
        elif isinstance(auth, BasicAuth):
            return httpx.BasicAuth(auth.username, auth.password)
        elif isinstance(auth, OAuth2Auth):
            token = await self._oauth.get_token(auth)
            headers["Authorization"] = f"Bearer {token}"
        return None

    # ── Discovery ─────────────────────────────────────────────────────────

    async def register_manual(self, caller, manual_call_template: CallTemplate) -> RegisterManualResult:
        template = self._as_http_template(manual_call_template)
        try:
            check_url_security(template.url)
            logger.info("Discovering tools from '%s' (HTTP) at %s", template.name, template.url)

            headers = dict(template.headers or {})
            params: Dict[str, Any] = {}
            auth = await self._apply_auth(template, headers, params)
            async with self._client(timeout=DISCOVERY_TIMEOUT) as client:
                response = await client.request(template.http_method, template.url, headers=headers, params=params, auth=auth)
            self._raise_for_status(response, template.url)

            document = self._parse_body(response, template.url)
            manual = manual_from_document(document, spec_url=template.url, call_template_name=template.name)
            logger.info("Found %d tools in '%s'", len(manual.tools), template.name)
            return RegisterManualResult(manual_call_template=template, manual=manual, success=True)

        except Exception as exc:
            logger.error("Error discovering tools from HTTP provider '%s': %s", template.name, exc)
            return RegisterManualResult(
                manual_call_template=template,
                manual=UtcpManual(),
                success=False,
                errors=[str(exc) or type(exc).__name__],
            )

    async def deregister_manual(self, caller, manual_call_template: CallTemplate) -> None:
        """Nothing is held per manual."""

    # ── Calls ─────────────────────────────────────────────────────────────

    async def call_tool(self, caller, tool_name: str, tool_args: Dict[str, Any], tool_call_template: CallTemplate) -> Any:
        template = self._as_http_template(tool_call_template)
        headers = dict(template.headers or {})
        remaining = dict(tool_args)

        for field_name in template.header_fields or []:
            if field_name in remaining:
                headers[field_name] = str(remaining.pop(field_name))

        has_body = bool(template.body_field) and template.body_field in remaining
        body = remaining.pop(template.body_field) if has_body else None

        url = build_url_with_path_params(template.url, remaining)
        params = remaining
        auth = await self._apply_auth(template, headers, params)

        request_kwargs: Dict[str, Any] = {}
        if has_body:
            if not any(key.lower() == "content-type" for key in headers):
                headers["Content-Type"] = template.content_type
            if isinstance(body, (str, bytes)):
                request_kwargs["content"] = body
            elif isinstance(body, dict) and "x-www-form-urlencoded" in template.content_type:
                request_kwargs["data"] = body
            else:
                request_kwargs["content"] = json.dumps(body)

        logger.info("Executing HTTP tool '%s' with URL: %s and method: %s", tool_name, url, template.http_method)
        try:
            async with self._client(timeout=template.timeout) as client:
                response = await client.request(
                    template.http_method, url, headers=headers, params=params, auth=auth, **request_kwargs
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        self._raise_for_status(response, url)
        return self._parse_body(response, url)

    @staticmethod
    def _parse_body(response: httpx.Response, url: str) -> Any:
        if _is_yaml(response, url):
            return yaml.safe_load(response.text)
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code} from {url}: {response.text[:500]}",
                status_code=response.status_code,
            )

    async def close(self) -> None:
        self._oauth.clear()
