"""
Create Notification MCP Tool

Schedules a new notification for the user.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, MCPToolError, create_success_response, serialize_notification
from coach_app.models.notification import NotificationType


class CreateNotificationTool(BaseMCPTool):
    """MCP Tool for scheduling notifications"""

    name = "create_notification"

    async def execute(
        self,
        user_id: str,
        type: Optional[str] = None,
        content: Optional[str] = None,
        scheduled_for: Optional[str] = None,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        tone: Optional[str] = None,
        channel: Optional[str] = None,
        slug: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Args:
            user_id: Owner of the notification
            type: One of the notification types
            content: Message text, may use {task_title}, {user_name}, {title}
            scheduled_for: ISO-8601 instant
            title: Short title (optional)
            metadata: e.g. {"task_id": 4} (optional)
            tone: Coach tone; marks a message schedule (optional)
            channel: in_app or webhook (optional)
            slug: Distinguishing key, unique among the user's live notifications (optional)

        Returns:
            Created notification
        """
        self.require("type", type)
        self.require("scheduled_for", scheduled_for)
        if metadata is not None and not isinstance(metadata, dict):
            raise MCPToolError(
                code="VALIDATION_ERROR",
                message="metadata must be an object",
                details={"field": "metadata"}
            )

        notification = self.commands.create_notification(
            user_id=user_id,
            type=type,
            content=content,
            scheduled_for=self.parse_instant("scheduled_for", scheduled_for),
            metadata=metadata,
            title=title or "",
            tone=tone,
            channel=channel,
            slug=slug,
            now=self.clock(),
        )

        return create_success_response(
            data=serialize_notification(notification),
            message=f"Scheduled {notification.type} #{notification.id}"
        )


def register_create_notification_tool(mcp_server, commands, clock=None):
    """Register create_notification tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = CreateNotificationTool(commands, clock) if clock else CreateNotificationTool(commands)
    tool = MCPTool(
        name="create_notification",
        description="Schedule a new notification (reminder, follow-up, morning message...) for the user",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "type": {"type": "string", "enum": [t.value for t in NotificationType], "description": "Notification type"},
                "content": {"type": "string", "maxLength": 4000, "description": "Message text (optional)"},
                "scheduled_for": {"type": "string", "format": "date-time", "description": "When to send (ISO-8601)"},
                "title": {"type": "string", "maxLength": 200, "description": "Short title (optional)"},
                "metadata": {"type": "object", "description": "Extra metadata such as task_id (optional)"},
                "tone": {"type": "string", "description": "Coach tone for coach-initiated messages (optional)"},
                "channel": {"type": "string", "enum": ["in_app", "webhook"], "description": "Delivery channel (optional)"},
                "slug": {"type": "string", "pattern": "^[a-z0-9][a-z0-9-]{0,119}$", "description": "Distinguishing key (optional)"}
            },
            "required": ["user_id", "type", "scheduled_for"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
