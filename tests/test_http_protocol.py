"""Tests for the HTTP communication protocol."""

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
import yaml

from utcp.data.auth import ApiKeyAuth, BasicAuth, OAuth2Auth
from utcp.exceptions import TransportError
from utcp.protocols.http import HttpCallTemplate, HttpCommunicationProtocol
from utcp.protocols.http.protocol import build_url_with_path_params, check_url_security

NATIVE_MANUAL = {
    "utcp_version": "1.0.1",
    "manual_version": "1.0.0",
    "tools": [
        {
            "name": "echo",
            "description": "Echo a message",
            "tags": ["utility"],
            "tool_call_template": {
                "call_template_type": "http",
                "http_method": "POST",
                "url": "https://api.example.com/echo",
            },
        }
    ],
}


class RecordingHandler:
    """Mock transport handler that remembers every request."""

    def __init__(self, respond):
        self.respond = respond
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self):
        return self.requests[-1]


def make_protocol(respond):
    handler = RecordingHandler(respond)
    return HttpCommunicationProtocol(transport=httpx.MockTransport(handler)), handler


class TestHelpers:
    """Tests for URL helpers."""

    def test_url_security(self):
        """Test which URLs pass the plaintext check."""
        check_url_security("https://api.example.com")
        check_url_security("http://localhost:8080/manual")
        check_url_security("http://127.0.0.1/manual")

        with pytest.raises(TransportError, match="Security error"):
            check_url_security("http://api.example.com")

    def test_url_security_checks_the_host(self):
        """Test that a local-looking prefix on a remote host is rejected."""
        for url in ("http://localhost@evil.example.com/manual", "http://localhost.evil.example.com/manual"):
            with pytest.raises(TransportError, match="Security error"):
                check_url_security(url)

    def test_path_params_encoded_and_consumed(self):
        """Test that path parameters are URL-encoded and removed from args."""
        args = {"user": "a b/c", "page": 2}

        url = build_url_with_path_params("https://x.example.com/users/{user}", args)

        assert url == "https://x.example.com/users/a%20b%2Fc"
        assert args == {"page": 2}

    def test_missing_path_param(self):
        """Test that an unfilled placeholder raises."""
        with pytest.raises(ValueError, match="id"):
            build_url_with_path_params("https://x.example.com/items/{id}", {})


class TestDiscovery:
    """Tests for manual registration over HTTP."""

    async def test_native_manual(self):
        """Test discovering a JSON UTCP manual."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json=NATIVE_MANUAL))
        template = HttpCallTemplate(name="echo_api", url="https://api.example.com/utcp")

        result = await protocol.register_manual(None, template)

        assert result.success is True
        assert result.errors == []
        assert [t.name for t in result.manual.tools] == ["echo"]
        assert handler.last.method == "GET"

    async def test_yaml_openapi(self):
        """Test discovering a YAML OpenAPI document."""
        spec = {
            "openapi": "3.0.0",
            "info": {"title": "svc"},
            "paths": {"/ping": {"get": {"operationId": "ping"}}},
        }
        protocol, _ = make_protocol(
            lambda request: httpx.Response(
                200, text=yaml.safe_dump(spec), headers={"content-type": "application/yaml"}
            )
        )
        template = HttpCallTemplate(name="svc", url="https://svc.example.com/openapi.yaml")

        result = await protocol.register_manual(None, template)

        assert result.success is True
        tool = result.manual.tools[0]
        assert tool.name == "ping"
        assert tool.tool_call_template.url == "https://svc.example.com/ping"

    async def test_insecure_url_rejected(self):
        """Test that plaintext discovery to a remote host fails before any request."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json=NATIVE_MANUAL))
        template = HttpCallTemplate(name="bad", url="http://api.example.com/utcp")

        result = await protocol.register_manual(None, template)

        assert result.success is False
        assert "Security error" in result.errors[0]
        assert handler.requests == []

    async def test_unrecognized_document(self):
        """Test that a body that is neither manual nor OpenAPI fails registration."""
        protocol, _ = make_protocol(lambda request: httpx.Response(200, text="<html>hi</html>"))
        template = HttpCallTemplate(name="site", url="https://www.example.com")

        result = await protocol.register_manual(None, template)

        assert result.success is False
        assert "neither a valid UTCP Manual nor an OpenAPI" in result.errors[0]

    async def test_error_status(self):
        """Test that an HTTP error status fails registration."""
        protocol, _ = make_protocol(lambda request: httpx.Response(503, text="down"))
        template = HttpCallTemplate(name="svc", url="https://svc.example.com/utcp")

        result = await protocol.register_manual(None, template)

        assert result.success is False
        assert "503" in result.errors[0]


class TestCallTool:
    """Tests for HTTP tool calls."""

    async def test_echo_post_json(self):
        """Test that the body field is sent as JSON and the JSON reply returned."""
        def respond(request):
            return httpx.Response(200, json={"echo": json.loads(request.content)})

        protocol, handler = make_protocol(respond)
        template = HttpCallTemplate(http_method="POST", url="https://api.example.com/echo")

        result = await protocol.call_tool(None, "api.echo", {"body": {"message": "hi"}}, template)

        assert result == {"echo": {"message": "hi"}}
        assert handler.last.headers["content-type"] == "application/json"

    async def test_argument_routing(self):
        """Test path, query and header argument placement."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json={"ok": True}))
        template = HttpCallTemplate(
            url="https://api.example.com/users/{user_id}",
            header_fields=["X-Request-Id"],
        )

        await protocol.call_tool(
            None, "api.get_user", {"user_id": "42", "X-Request-Id": "abc", "fields": "name"}, template
        )

        request = handler.last
        assert request.url.path == "/users/42"
        assert request.url.params["fields"] == "name"
        assert "user_id" not in request.url.params
        assert request.headers["X-Request-Id"] == "abc"
        assert request.content == b""

    async def test_string_body_sent_raw(self):
        """Test that string bodies are not JSON-encoded."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, text="done"))
        template = HttpCallTemplate(
            http_method="PUT", url="https://api.example.com/notes", content_type="text/plain"
        )

        result = await protocol.call_tool(None, "api.put_note", {"body": "plain note"}, template)

        assert result == "done"
        assert handler.last.content == b"plain note"
        assert handler.last.headers["content-type"] == "text/plain"

    async def test_form_body(self):
        """Test form encoding for x-www-form-urlencoded templates."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json={}))
        template = HttpCallTemplate(
            http_method="POST",
            url="https://api.example.com/form",
            content_type="application/x-www-form-urlencoded",
        )

        await protocol.call_tool(None, "api.form", {"body": {"a": "1", "b": "two"}}, template)

        assert parse_qs(handler.last.content.decode()) == {"a": ["1"], "b": ["two"]}

    async def test_error_status_raises(self):
        """Test that HTTP errors surface with their status code."""
        protocol, _ = make_protocol(lambda request: httpx.Response(404, text="missing"))
        template = HttpCallTemplate(url="https://api.example.com/nothing")

        with pytest.raises(TransportError) as exc_info:
            await protocol.call_tool(None, "api.nothing", {}, template)

        assert exc_info.value.status_code == 404

    async def test_network_error_wrapped(self):
        """Test that connection failures become TransportError."""
        def respond(request):
            raise httpx.ConnectError("connection refused", request=request)

        protocol, _ = make_protocol(respond)
        template = HttpCallTemplate(url="https://api.example.com/down")

        with pytest.raises(TransportError, match="connection refused"):
            await protocol.call_tool(None, "api.down", {}, template)


class TestAuth:
    """Tests for credential placement."""

    async def test_api_key_locations(self):
        """Test api keys in header, query and cookie."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json={}))
        url = "https://api.example.com/data"

        await protocol.call_tool(
            None, "a.t", {}, HttpCallTemplate(url=url, auth=ApiKeyAuth(api_key="k1"))
        )
        assert handler.last.headers["X-Api-Key"] == "k1"

        await protocol.call_tool(
            None, "a.t", {}, HttpCallTemplate(url=url, auth=ApiKeyAuth(api_key="k2", var_name="key", location="query"))
        )
        assert handler.last.url.params["key"] == "k2"

        await protocol.call_tool(
            None,
            "a.t",
            {},
            HttpCallTemplate(
                url=url,
                headers={"Cookie": "session=abc"},
                auth=ApiKeyAuth(api_key="k3", var_name="token", location="cookie"),
            ),
        )
        assert handler.last.headers["Cookie"] == "session=abc; token=k3"

    async def test_empty_api_key(self):
        """Test that an empty api key is refused."""
        protocol, _ = make_protocol(lambda request: httpx.Response(200, json={}))
        template = HttpCallTemplate(url="https://api.example.com", auth=ApiKeyAuth(api_key=""))

        with pytest.raises(ValueError, match="empty"):
            await protocol.call_tool(None, "a.t", {}, template)

    async def test_basic_auth(self):
        """Test HTTP basic credentials."""
        protocol, handler = make_protocol(lambda request: httpx.Response(200, json={}))
        template = HttpCallTemplate(
            url="https://api.example.com", auth=BasicAuth(username="user", password="pass")
        )

        await protocol.call_tool(None, "a.t", {}, template)

        expected = base64.b64encode(b"user:pass").decode()
        assert handler.last.headers["Authorization"] == f"Basic {expected}"

    async def test_oauth2_token_cached(self):
        """Test that a fetched token is reused until it expires."""
        def respond(request):
            if request.url.path == "/token":
                form = parse_qs(request.content.decode())
                # only the body-credential variant succeeds
                if form.get("client_id") == ["cid"] and form.get("client_secret") == ["secret"]:
                    return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 600})
                return httpx.Response(401, json={"error": "invalid_client"})
            return httpx.Response(200, json={"auth": request.headers.get("Authorization")})

        protocol, handler = make_protocol(respond)
        auth = OAuth2Auth(token_url="https://auth.example.com/token", client_id="cid", client_secret="secret")
        template = HttpCallTemplate(url="https://api.example.com/me", auth=auth)

        first = await protocol.call_tool(None, "a.me", {}, template)
        token_requests = sum(1 for r in handler.requests if r.url.path == "/token")
        second = await protocol.call_tool(None, "a.me", {}, template)

        assert first == {"auth": "Bearer tok-1"}
        assert second == {"auth": "Bearer tok-1"}
        assert sum(1 for r in handler.requests if r.url.path == "/token") == token_requests

    async def test_oauth2_all_methods_fail(self):
        """Test that a token failure reports every attempt."""
        protocol, _ = make_protocol(lambda request: httpx.Response(401, json={}))
        auth = OAuth2Auth(token_url="https://auth.example.com/token", client_id="cid", client_secret="bad")
        template = HttpCallTemplate(url="https://api.example.com/me", auth=auth)

        with pytest.raises(TransportError, match="after trying all methods"):
            await protocol.call_tool(None, "a.me", {}, template)
