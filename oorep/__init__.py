"""
OOREP client - resilient async access to the OOREP homeopathy API.

Provides:
- OOREPClient: cached, deduplicated, session-aware facade
- Settings: configuration loaded from OOREP_MCP_* environment variables
- execute_tool / TOOL_DEFINITIONS: tool-calling entry points
"""

__version__ = "0.1.0"

from oorep.client import OOREPClient, create_client  # noqa: E402
from oorep.settings import Settings  # noqa: E402

__all__ = [
    "__version__",
    "OOREPClient",
    "create_client",
    "Settings",
]
