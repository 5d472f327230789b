"""Convert OpenAPI 2.0 / 3.x documents into UTCP manuals."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from utcp.data.auth import ApiKeyAuth, Auth, BasicAuth, OAuth2Auth
from utcp.data.manual import UtcpManual
from utcp.data.tool import Tool
from utcp.exceptions import DiscoveryFormatError
from utcp.protocols.http.call_template import HttpCallTemplate

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch")
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class OpenApiConverter:
    """
    Builds one HTTP tool per operation that has an ``operationId``.

    Credentials found in security schemes become ``${TEMPLATE__NAME_N}``
    placeholders, so the client resolves them through variable substitution
    under the manual's namespace.

    Parameters
    ----------
    openapi_spec : parsed OpenAPI document
    spec_url : where the document was fetched from, used for the base URL
        when the document declares no ``servers``
    call_template_name : name for generated templates; defaults to the
        sanitized ``info.title``
    """

    def __init__(
        self,
        openapi_spec: Dict[str, Any],
        spec_url: Optional[str] = None,
        call_template_name: Optional[str] = None,
    ):
        self.spec = openapi_spec
        self.spec_url = spec_url
        name = call_template_name or (openapi_spec.get("info") or {}).get("title") or "openapi_call_template"
        self.call_template_name = _INVALID_NAME_CHARS.sub("_", name)
        self._placeholder_counter = 0

    def _placeholder(self, base_name: str) -> str:
        self._placeholder_counter += 1
        return "${" + f"{self.call_template_name.upper()}__{base_name.upper()}_{self._placeholder_counter}" + "}"

    # ── Conversion ────────────────────────────────────────────────────────

    def convert(self) -> UtcpManual:
        self._placeholder_counter = 0
        base_url = self._base_url()
        tools: List[Tool] = []

        for path, path_item in (self.spec.get("paths") or {}).items():
            if not isinstance(path_item, dict):
                continue
            for method, operation in path_item.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                tool = self._create_tool(path, method, operation, base_url)
                if tool is not None:
                    tools.append(tool)

        return UtcpManual(tools=tools)

    def _base_url(self) -> str:
        servers = self.spec.get("servers")
        if isinstance(servers, list) and servers and servers[0].get("url"):
            return servers[0]["url"]

        # Swagger 2.0
        if self.spec.get("host"):
            scheme = (self.spec.get("schemes") or ["https"])[0]
            return f"{scheme}://{self.spec['host']}{self.spec.get('basePath', '')}"

        if self.spec_url:
            parsed = urlparse(self.spec_url)
            if parsed.scheme and parsed.netloc:
                return f"{parsed.scheme}://{parsed.netloc}"
            logger.error("Invalid spec URL provided: %s", self.spec_url)
        else:
            logger.warning("No server info or spec URL provided, using '/' as base URL")
        return "/"

    def _create_tool(self, path: str, method: str, operation: Dict[str, Any], base_url: str) -> Optional[Tool]:
        operation_id = operation.get("operationId")
        if not operation_id:
            return None

        inputs, header_fields, body_field = self._extract_inputs(path, operation)
        call_template = HttpCallTemplate(
            name=self.call_template_name,
            http_method=method.upper(),
            url=f"{base_url.rstrip('/')}/{path.lstrip('/')}",
            body_field=body_field or "body",
            header_fields=header_fields or None,
            auth=self._extract_auth(operation),
        )

        return Tool(
            name=operation_id,
            description=operation.get("summary") or operation.get("description") or "",
            inputs=inputs,
            outputs=self._extract_outputs(operation),
            tags=operation.get("tags") or [],
            tool_call_template=call_template,
        )

    # ── $ref resolution ───────────────────────────────────────────────────

    def _resolve_ref(self, ref: str) -> Any:
        if not ref.startswith("#/"):
            return {"$ref": ref}
        node: Any = self.spec
        for part in ref[2:].split("/"):
            part = unquote(part).replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                return {"$ref": ref}
            node = node[part]
        return node

    def resolve_schema(self, schema: Any, visited: FrozenSet[str] = frozenset()) -> Any:
        """Inline local ``$ref`` pointers. A ref already on the current path is left as is."""
        if isinstance(schema, list):
            return [self.resolve_schema(item, visited) for item in schema]
        if not isinstance(schema, dict):
            return schema

        ref = schema.get("$ref")
        if isinstance(ref, str):
            if ref in visited:
                return {"$ref": ref}
            return self.resolve_schema(self._resolve_ref(ref), visited | {ref})

        return {key: self.resolve_schema(value, visited) for key, value in schema.items()}

    # ── Inputs / outputs ──────────────────────────────────────────────────

    def _extract_inputs(self, path: str, operation: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str], Optional[str]]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        header_fields: List[str] = []
        body_field: Optional[str] = None

        path_item = (self.spec.get("paths") or {}).get(path) or {}
        parameters = list(path_item.get("parameters") or []) + list(operation.get("parameters") or [])

        for raw_param in parameters:
            param = self.resolve_schema(raw_param)
            name = param.get("name")
            if not name:
                continue

            if param.get("in") == "header":
                header_fields.append(name)

            if param.get("in") == "body":
                body_field = "body"
                properties[body_field] = {
                    "description": param.get("description") or "Request body",
                    **(param.get("schema") or {}),
                }
                if param.get("required"):
                    required.append(body_field)
                continue

            schema = dict(param.get("schema") or {})
            for key in ("type", "items", "enum"):
                if key not in schema and key in param:
                    schema[key] = param[key]
            properties[name] = {"description": param.get("description") or "", **schema}
            if param.get("required"):
                required.append(name)

        request_body = operation.get("requestBody")
        if request_body:
            body = self.resolve_schema(request_body)
            content = body.get("content") or {}
            body_schema = (content.get("application/json") or {}).get("schema") or (
                content.get("application/x-www-form-urlencoded") or {}
            ).get("schema")
            if body_schema:
                body_field = "body"
                properties[body_field] = {
                    "description": body.get("description") or "Request body",
                    **body_schema,
                }
                if body.get("required"):
                    required.append(body_field)

        inputs: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            inputs["required"] = required
        return inputs, header_fields, body_field

    def _extract_outputs(self, operation: Dict[str, Any]) -> Dict[str, Any]:
        responses = operation.get("responses") or {}
        success = responses.get("200") or responses.get("201") or responses.get("default")
        if not success:
            return {}

        response = self.resolve_schema(success)
        schema = None
        if "content" in response:
            content = response.get("content") or {}
            schema = (content.get("application/json") or {}).get("schema") or (content.get("text/plain") or {}).get("schema")
            if not schema and content:
                first = next(iter(content.values()))
                if isinstance(first, dict):
                    schema = first.get("schema")
        elif "schema" in response:
            schema = response["schema"]

        if not schema:
            return {}

        outputs = {"type": schema.get("type") or "object"}
        for key in ("properties", "required", "description", "title", "items", "enum", "minimum", "maximum", "format"):
            if schema.get(key) is not None:
                outputs[key] = schema[key]
        return outputs

    # ── Auth ──────────────────────────────────────────────────────────────

    def _extract_auth(self, operation: Dict[str, Any]) -> Optional[Auth]:
        requirements = operation.get("security") or self.spec.get("security") or []
        schemes = self._security_schemes()
        for requirement in requirements:
            for scheme_name in requirement:
                if scheme_name in schemes:
                    return self._auth_from_scheme(schemes[scheme_name])
        return None

    def _security_schemes(self) -> Dict[str, Any]:
        if "components" in self.spec:
            return (self.spec.get("components") or {}).get("securitySchemes") or {}
        return self.spec.get("securityDefinitions") or {}

    def _auth_from_scheme(self, scheme: Dict[str, Any]) -> Optional[Auth]:
        scheme_type = (scheme.get("type") or "").lower()

        if scheme_type == "apikey":
            return ApiKeyAuth(
                api_key=self._placeholder("API_KEY"),
                var_name=scheme.get("name") or "Authorization",
                location=scheme.get("in") or "header",
            )

        http_scheme = (scheme.get("scheme") or "").lower()
        if scheme_type == "basic" or (scheme_type == "http" and http_scheme == "basic"):
            return BasicAuth(username=self._placeholder("USERNAME"), password=self._placeholder("PASSWORD"))

        if scheme_type == "http" and http_scheme == "bearer":
            return ApiKeyAuth(
                api_key=f"Bearer {self._placeholder('API_KEY')}",
                var_name="Authorization",
                location="header",
            )

        if scheme_type == "oauth2":
            # OpenAPI 3 nests token URLs under flows; Swagger 2.0 puts it on the scheme
            flows = list((scheme.get("flows") or {}).values()) or [scheme]
            for flow in flows:
                token_url = flow.get("tokenUrl")
                if token_url:
                    scopes = flow.get("scopes") or {}
                    return OAuth2Auth(
                        token_url=token_url,
                        client_id=self._placeholder("CLIENT_ID"),
                        client_secret=self._placeholder("CLIENT_SECRET"),
                        scope=" ".join(scopes) if scopes else None,
                    )

        return None


def is_openapi_document(document: Any) -> bool:
    return isinstance(document, dict) and any(key in document for key in ("openapi", "swagger", "paths"))


def manual_from_document(
    document: Any,
    spec_url: Optional[str] = None,
    call_template_name: Optional[str] = None,
) -> UtcpManual:
    """Interpret a fetched document as a native manual or an OpenAPI spec."""
    if isinstance(document, dict) and document.get("utcp_version") and isinstance(document.get("tools"), list):
        return UtcpManual.model_validate(document)
    if is_openapi_document(document):
        logger.info("Converting OpenAPI document from %s to a UTCP manual", spec_url or call_template_name)
        return OpenApiConverter(document, spec_url=spec_url, call_template_name=call_template_name).convert()
    raise DiscoveryFormatError("Response is neither a valid UTCP Manual nor an OpenAPI Specification.")
