"""
Snooze Notification MCP Tool

Pushes a pending notification, found by description, some minutes later.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, MCPToolError, create_success_response, serialize_notification


class SnoozeNotificationTool(BaseMCPTool):
    """MCP Tool for snoozing notifications by reference"""

    name = "snooze_notification"

    async def execute(
        self,
        user_id: str,
        description: Optional[str] = None,
        minutes: Optional[int] = None,
        date: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        self.require("description", description)
        self.require("minutes", minutes)
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise MCPToolError(
                code="VALIDATION_ERROR",
                message="minutes must be an integer",
                details={"field": "minutes", "value": minutes}
            )

        notification = self.commands.snooze_by_reference(
            user_id,
            description,
            minutes,
            on_date=self.parse_date("date", date),
            now=self.clock(),
        )

        return create_success_response(
            data=serialize_notification(notification),
            message=f"Notification #{notification.id} snoozed for {minutes} minutes"
        )


def register_snooze_notification_tool(mcp_server, commands, clock=None):
    """Register snooze_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = SnoozeNotificationTool(commands, clock) if clock else SnoozeNotificationTool(commands)
    tool = MCPTool(
        name="snooze_notification",
        description="Delay a pending notification by a number of minutes",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "description": {"type": "string", "description": "Which notification, e.g. 'morning message' or '#12'"},
                "minutes": {"type": "integer", "minimum": 1, "maximum": 1440, "description": "Minutes to delay"},
                "date": {"type": "string", "format": "date", "description": "Day the notification is on (YYYY-MM-DD, optional)"}
            },
            "required": ["user_id", "description", "minutes"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
