"""Data models: auth, call templates, tools, and manuals."""

from utcp.data.auth import ApiKeyAuth, Auth, BasicAuth, OAuth2Auth
from utcp.data.call_template import CallTemplate
from utcp.data.manual import UTCP_VERSION, RegisterManualResult, UtcpManual
from utcp.data.tool import Tool

__all__ = [
    "ApiKeyAuth",
    "Auth",
    "BasicAuth",
    "OAuth2Auth",
    "CallTemplate",
    "RegisterManualResult",
    "Tool",
    "UTCP_VERSION",
    "UtcpManual",
]
