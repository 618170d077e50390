"""
Duplicate Notification MCP Tool

Copies a notification into a new, independent pending one.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, create_success_response, serialize_notification


class DuplicateNotificationTool(BaseMCPTool):
    """MCP Tool for duplicating notifications by reference"""

    name = "duplicate_notification"

    async def execute(
        self,
        user_id: str,
        description: Optional[str] = None,
        scheduled_for: Optional[str] = None,
        date: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        self.require("description", description)

        copy = self.commands.duplicate_by_reference(
            user_id,
            description,
            scheduled_for=self.parse_instant("scheduled_for", scheduled_for),
            on_date=self.parse_date("date", date),
            now=self.clock(),
        )

        return create_success_response(
            data=serialize_notification(copy),
            message=f"Created copy #{copy.id} of notification #{copy.duplicated_from}"
        )


def register_duplicate_notification_tool(mcp_server, commands, clock=None):
    """Register duplicate_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = DuplicateNotificationTool(commands, clock) if clock else DuplicateNotificationTool(commands)
    tool = MCPTool(
        name="duplicate_notification",
        description="Copy a notification, optionally to a different time",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "description": {"type": "string", "description": "Which notification to copy"},
                "scheduled_for": {"type": "string", "format": "date-time", "description": "Time for the copy (ISO-8601, optional)"},
                "date": {"type": "string", "format": "date", "description": "Day the source is on (YYYY-MM-DD, optional)"}
            },
            "required": ["user_id", "description"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
