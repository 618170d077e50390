"""
Cancel Notification MCP Tool

Cancels a notification found by description. Cancelling twice is harmless.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, create_success_response, serialize_notification


class CancelNotificationTool(BaseMCPTool):
    """MCP Tool for cancelling notifications by reference"""

    name = "cancel_notification"

    async def execute(
        self,
        user_id: str,
        description: Optional[str] = None,
        date: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        self.require("description", description)

        notification = self.commands.cancel_by_reference(
            user_id,
            description,
            on_date=self.parse_date("date", date),
            now=self.clock(),
        )

        return create_success_response(
            data=serialize_notification(notification),
            message=f"Notification #{notification.id} cancelled"
        )


def register_cancel_notification_tool(mcp_server, commands, clock=None):
    """Register cancel_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = CancelNotificationTool(commands, clock) if clock else CancelNotificationTool(commands)
    tool = MCPTool(
        name="cancel_notification",
        description="Cancel a scheduled notification so it is never sent",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "description": {"type": "string", "description": "Which notification, e.g. 'the 9:30 follow-up' or '#12'"},
                "date": {"type": "string", "format": "date", "description": "Day the notification is on (YYYY-MM-DD, optional)"}
            },
            "required": ["user_id", "description"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
