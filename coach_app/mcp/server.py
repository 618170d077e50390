"""
MCP Server Implementation

The function-calling surface the natural-language interpreter uses to manage
a user's notifications. Every tool requires ``user_id`` and answers with the
``{success, data | error}`` envelope.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass
import logging

from coach_app.services.command_surface import CommandSurface

logger = logging.getLogger(__name__)


@dataclass
class MCPTool:
    """MCP Tool definition"""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable


class MCPServer:
    """
    MCP Server for notification scheduling

    Provides tools that the interpreter can invoke on a user's behalf.
    """

    def __init__(self, name: str = "coach-notification-mcp-server"):
        self.tools: Dict[str, MCPTool] = {}
        self.name = name
        logger.info(f"Initializing MCP Server: {self.name}")

    def register_tool(self, tool: MCPTool):
        """Register a tool with the MCP server"""
        if tool.name in self.tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")

        self.tools[tool.name] = tool
        logger.info(f"Registered MCP tool: {tool.name}")

    def get_tool(self, name: str) -> MCPTool:
        """Get a registered tool by name"""
        if name not in self.tools:
            raise ValueError(f"Tool {name} not found. Available tools: {list(self.tools.keys())}")
        return self.tools[name]

    def list_tools(self) -> list[str]:
        """List all registered tool names"""
        return list(self.tools.keys())

    async def invoke_tool(self, tool_name: str, **kwargs) -> Dict[str, Any]:
        """
        Invoke a tool with parameters

        Args:
            tool_name: Name of the tool to invoke
            **kwargs: Tool parameters (must include user_id)

        Returns:
            Tool execution result

        Raises:
            ValueError: If tool not found or user_id missing
        """
        tool = self.get_tool(tool_name)

        if 'user_id' not in kwargs:
            raise ValueError("user_id is required for all MCP tool calls")

        logger.info(f"Invoking MCP tool: {tool_name} for user: {kwargs['user_id']}")

        result = await tool.handler(**kwargs)
        if result.get("success"):
            logger.info(f"Tool {tool_name} executed successfully")
        else:
            logger.info(f"Tool {tool_name} returned error {result.get('error', {}).get('code')}")
        return result

    def get_tool_schemas(self) -> Dict[str, Dict[str, Any]]:
        """Get JSON schemas for all registered tools"""
        return {
            name: {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters
            }
            for name, tool in self.tools.items()
        }


def build_mcp_server(commands: CommandSurface, clock: Optional[Callable[[], datetime]] = None) -> MCPServer:
    """MCP server with every notification tool registered"""
    from coach_app.mcp.tools.cancel_notification import register_cancel_notification_tool
    from coach_app.mcp.tools.create_notification import register_create_notification_tool
    from coach_app.mcp.tools.delete_notification import register_delete_notification_tool
    from coach_app.mcp.tools.duplicate_notification import register_duplicate_notification_tool
    from coach_app.mcp.tools.list_today import register_list_today_tool
    from coach_app.mcp.tools.reschedule_notification import register_reschedule_notification_tool
    from coach_app.mcp.tools.snooze_notification import register_snooze_notification_tool

    server = MCPServer()
    for register in (
        register_list_today_tool,
        register_create_notification_tool,
        register_reschedule_notification_tool,
        register_snooze_notification_tool,
        register_cancel_notification_tool,
        register_duplicate_notification_tool,
        register_delete_notification_tool,
    ):
        register(server, commands, clock)
    return server
