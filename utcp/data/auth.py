"""Authentication settings attached to call templates."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ApiKeyAuth(BaseModel):
    """An API key sent in a header, query parameter, or cookie."""

    auth_type: Literal["api_key"] = "api_key"
    api_key: str
    var_name: str = "X-Api-Key"
    location: Literal["header", "query", "cookie"] = "header"


class BasicAuth(BaseModel):
    """HTTP Basic credentials."""

    auth_type: Literal["basic"] = "basic"
    username: str
    password: str


class OAuth2Auth(BaseModel):
    """OAuth2 client-credentials grant."""

    auth_type: Literal["oauth2"] = "oauth2"
    token_url: str
    client_id: str
    client_secret: str
    scope: Optional[str] = None


Auth = Annotated[Union[ApiKeyAuth, BasicAuth, OAuth2Auth], Field(discriminator="auth_type")]
