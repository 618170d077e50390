"""
Reschedule Notification MCP Tool

Moves a pending notification, found by description, to a new time.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, create_success_response, serialize_notification


class RescheduleNotificationTool(BaseMCPTool):
    """MCP Tool for rescheduling notifications by reference"""

    name = "reschedule_notification"

    async def execute(
        self,
        user_id: str,
        description: Optional[str] = None,
        new_time: Optional[str] = None,
        date: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        self.require("description", description)
        self.require("new_time", new_time)

        notification = self.commands.reschedule_by_reference(
            user_id,
            description,
            self.parse_instant("new_time", new_time),
            on_date=self.parse_date("date", date),
            now=self.clock(),
        )

        return create_success_response(
            data=serialize_notification(notification),
            message=f"Notification #{notification.id} rescheduled"
        )


def register_reschedule_notification_tool(mcp_server, commands, clock=None):
    """Register reschedule_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = RescheduleNotificationTool(commands, clock) if clock else RescheduleNotificationTool(commands)
    tool = MCPTool(
        name="reschedule_notification",
        description="Move a pending notification to a new time. Describe it by id (#12), type, time of day or title words",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "description": {"type": "string", "description": "Which notification, e.g. 'the 3pm gym reminder' or '#12'"},
                "new_time": {"type": "string", "format": "date-time", "description": "New send time (ISO-8601)"},
                "date": {"type": "string", "format": "date", "description": "Day the notification is on (YYYY-MM-DD, optional)"}
            },
            "required": ["user_id", "description", "new_time"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
