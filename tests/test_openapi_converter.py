"""Tests for OpenAPI conversion."""

import pytest

from utcp.data.auth import ApiKeyAuth, BasicAuth, OAuth2Auth
from utcp.exceptions import DiscoveryFormatError
from utcp.protocols.http.openapi import OpenApiConverter, is_openapi_document, manual_from_document

PETSTORE = {
    "openapi": "3.0.0",
    "info": {"title": "Pet Store", "version": "1.0"},
    "servers": [{"url": "https://pets.example.com/v1"}],
    "paths": {
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}}
            ],
            "get": {
                "operationId": "getPet",
                "summary": "Get a pet by id",
                "tags": ["pets"],
                "parameters": [
                    {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
                    {"name": "verbose", "in": "query", "schema": {"type": "boolean"}},
                ],
                "responses": {
                    "200": {
                        "description": "A pet",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                    }
                },
            },
            "delete": {
                "summary": "No operationId, skipped",
                "responses": {"204": {"description": "gone"}},
            },
        },
        "/pets": {
            "post": {
                "operationId": "createPet",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                },
                "security": [{"apiKey": []}],
                "responses": {"201": {"description": "created"}},
            }
        },
    },
    "components": {
        "schemas": {
            "Pet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "parent": {"$ref": "#/components/schemas/Pet"},
                },
            }
        },
        "securitySchemes": {"apiKey": {"type": "apiKey", "in": "header", "name": "X-Api-Key"}},
    },
}


class TestOpenApiConverter:
    """Tests for OpenApiConverter."""

    def test_tools_per_operation(self):
        """Test that each operation with an operationId becomes a tool."""
        manual = OpenApiConverter(PETSTORE).convert()

        assert [t.name for t in manual.tools] == ["getPet", "createPet"]

    def test_template_from_operation(self):
        """Test method, URL and header field extraction."""
        manual = OpenApiConverter(PETSTORE).convert()
        get_pet = manual.tools[0]
        template = get_pet.tool_call_template

        assert template.name == "Pet_Store"
        assert template.http_method == "GET"
        assert template.url == "https://pets.example.com/v1/pets/{petId}"
        assert template.header_fields == ["X-Trace"]
        assert get_pet.description == "Get a pet by id"
        assert get_pet.tags == ["pets"]

    def test_path_and_operation_parameters_merged(self):
        """Test that path-level parameters join the operation's own."""
        get_pet = OpenApiConverter(PETSTORE).convert().tools[0]

        properties = get_pet.inputs["properties"]
        assert set(properties) == {"petId", "X-Trace", "verbose"}
        assert properties["verbose"]["type"] == "boolean"
        assert get_pet.inputs["required"] == ["petId"]

    def test_request_body(self):
        """Test that a JSON request body becomes the body input."""
        create_pet = OpenApiConverter(PETSTORE).convert().tools[1]

        body = create_pet.inputs["properties"]["body"]
        assert body["type"] == "object"
        assert body["required"] == ["name"]
        assert create_pet.inputs["required"] == ["body"]
        assert create_pet.tool_call_template.body_field == "body"

    def test_recursive_ref_terminates(self):
        """Test that a self-referencing schema is inlined once and then left as a ref."""
        get_pet = OpenApiConverter(PETSTORE).convert().tools[0]

        parent = get_pet.outputs["properties"]["parent"]
        assert parent == {"$ref": "#/components/schemas/Pet"}

    def test_api_key_placeholder(self):
        """Test that api key schemes become substitutable placeholders."""
        create_pet = OpenApiConverter(PETSTORE, call_template_name="pets").convert().tools[1]

        auth = create_pet.tool_call_template.auth
        assert isinstance(auth, ApiKeyAuth)
        assert auth.api_key == "${PETS__API_KEY_1}"
        assert auth.var_name == "X-Api-Key"
        assert auth.location == "header"

    def test_bearer_and_basic(self):
        """Test HTTP bearer and basic schemes."""
        spec = {
            "openapi": "3.0.0",
            "servers": [{"url": "https://x.example.com"}],
            "paths": {
                "/a": {"get": {"operationId": "a", "security": [{"bearer": []}]}},
                "/b": {"get": {"operationId": "b", "security": [{"basic": []}]}},
            },
            "components": {
                "securitySchemes": {
                    "bearer": {"type": "http", "scheme": "bearer"},
                    "basic": {"type": "http", "scheme": "basic"},
                }
            },
        }

        tools = OpenApiConverter(spec, call_template_name="x").convert().tools

        assert tools[0].tool_call_template.auth.api_key == "Bearer ${X__API_KEY_1}"
        basic = tools[1].tool_call_template.auth
        assert isinstance(basic, BasicAuth)
        assert basic.username == "${X__USERNAME_2}"
        assert basic.password == "${X__PASSWORD_3}"

    def test_oauth2_flows(self):
        """Test OAuth2 client credentials extraction."""
        spec = {
            "openapi": "3.0.0",
            "security": [{"oauth": []}],
            "paths": {"/a": {"get": {"operationId": "a"}}},
            "components": {
                "securitySchemes": {
                    "oauth": {
                        "type": "oauth2",
                        "flows": {
                            "clientCredentials": {
                                "tokenUrl": "https://auth.example.com/token",
                                "scopes": {"read": "", "write": ""},
                            }
                        },
                    }
                }
            },
        }

        auth = OpenApiConverter(spec, call_template_name="svc").convert().tools[0].tool_call_template.auth

        assert isinstance(auth, OAuth2Auth)
        assert auth.token_url == "https://auth.example.com/token"
        assert auth.client_id == "${SVC__CLIENT_ID_1}"
        assert auth.scope == "read write"

    def test_swagger2(self):
        """Test base URL, body parameters and auth from a Swagger 2.0 document."""
        spec = {
            "swagger": "2.0",
            "host": "legacy.example.com",
            "basePath": "/api",
            "schemes": ["https"],
            "securityDefinitions": {"key": {"type": "apiKey", "in": "query", "name": "key"}},
            "paths": {
                "/items": {
                    "post": {
                        "operationId": "addItem",
                        "security": [{"key": []}],
                        "parameters": [
                            {"name": "item", "in": "body", "required": True, "schema": {"type": "object"}}
                        ],
                        "responses": {"200": {"schema": {"type": "array", "items": {"type": "string"}}}},
                    }
                }
            },
        }

        tool = OpenApiConverter(spec, call_template_name="legacy").convert().tools[0]

        assert tool.tool_call_template.url == "https://legacy.example.com/api/items"
        assert tool.inputs["properties"]["body"]["type"] == "object"
        assert tool.outputs == {"type": "array", "items": {"type": "string"}}
        assert tool.tool_call_template.auth.location == "query"

    def test_base_url_from_spec_url(self):
        """Test falling back to the spec URL's origin when no server is declared."""
        spec = {"openapi": "3.0.0", "paths": {"/ping": {"get": {"operationId": "ping"}}}}

        tool = OpenApiConverter(spec, spec_url="https://host.example.com/docs/openapi.json").convert().tools[0]

        assert tool.tool_call_template.url == "https://host.example.com/ping"


class TestManualFromDocument:
    """Tests for document classification."""

    def test_native_manual(self):
        """Test that a document with utcp_version and tools is taken as a manual."""
        document = {
            "utcp_version": "1.0.1",
            "tools": [
                {
                    "name": "echo",
                    "tool_call_template": {"call_template_type": "http", "url": "https://e.example.com"},
                }
            ],
        }

        manual = manual_from_document(document)

        assert manual.tools[0].name == "echo"

    def test_openapi_detected(self):
        """Test that OpenAPI documents are converted."""
        assert is_openapi_document(PETSTORE)
        assert len(manual_from_document(PETSTORE).tools) == 2

    def test_neither(self):
        """Test that unrecognized documents are rejected with a clear error."""
        with pytest.raises(DiscoveryFormatError, match="neither a valid UTCP Manual nor an OpenAPI"):
            manual_from_document({"hello": "world"})

        with pytest.raises(DiscoveryFormatError):
            manual_from_document("just text")
