"""Jotter MCP bridge: stdio JSON-RPC server and single-client TCP proxy."""

from .api_client import ApiClient, ApiError
from .framing import ByteFramer, LineFramer, decode_frame
from .mcp_server import TOOLS, JotterMCP, ProtocolError
from .tcp_bridge import BUSY_MESSAGE, ConnectionGuard, TcpBridge
