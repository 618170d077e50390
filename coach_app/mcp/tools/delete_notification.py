"""
Delete Notification MCP Tool

Soft-deletes a notification found by description.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, create_success_response


class DeleteNotificationTool(BaseMCPTool):
    """MCP Tool for deleting notifications by reference"""

    name = "delete_notification"

    async def execute(
        self,
        user_id: str,
        description: Optional[str] = None,
        date: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        self.require("description", description)

        deleted = self.commands.delete_by_reference(
            user_id,
            description,
            on_date=self.parse_date("date", date),
            now=self.clock(),
        )

        return create_success_response(
            data={"id": deleted.id, "deleted": True},
            message=f"Notification #{deleted.id} deleted"
        )


def register_delete_notification_tool(mcp_server, commands, clock=None):
    """Register delete_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = DeleteNotificationTool(commands, clock) if clock else DeleteNotificationTool(commands)
    tool = MCPTool(
        name="delete_notification",
        description="Delete a notification permanently from the user's schedule",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "description": {"type": "string", "description": "Which notification to delete"},
                "date": {"type": "string", "format": "date", "description": "Day the notification is on (YYYY-MM-DD, optional)"}
            },
            "required": ["user_id", "description"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
