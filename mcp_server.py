# mcp_server.py
from fastapi_mcp import FastApiMCP
from fastapi_app import app as gateway_app

# Expose the gateway routes as MCP tools
mcp = FastApiMCP(
    gateway_app,
    name="JSON→XML mTLS MCP Gateway",
    description="Forwards a header+payload JSON envelope as XML over mutual TLS and returns the JSON reply.",
    include_operations=["rest_api_call"],
    describe_all_responses=True,
    describe_full_response_schema=True,
)

# Mount HTTP transport for MCP
mcp.mount_http()

# Expose wrapped app for uvicorn
app = gateway_app
