"""
List Today MCP Tool

Lists a user's notifications for one local day, pending only by default.
"""

from typing import Any, Dict, Optional

from coach_app.mcp.base_tool import BaseMCPTool, create_success_response, serialize_notification


class ListTodayTool(BaseMCPTool):
    """MCP Tool for listing the day's notifications"""

    name = "list_today"

    async def execute(
        self,
        user_id: str,
        date: Optional[str] = None,
        include_all: bool = False,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Args:
            user_id: Owner of the notifications
            date: Local calendar day (YYYY-MM-DD), defaults to the user's today
            include_all: Also list sent, failed and cancelled notifications

        Returns:
            Notifications ordered by scheduled time
        """
        on_date = self.parse_date("date", date)
        now = self.clock()
        day = on_date or self.commands.user_today(user_id, now)
        notifications = self.commands.list_today(user_id, day, include_all=bool(include_all), now=now)

        return create_success_response(
            data={
                "date": day.isoformat(),
                "notifications": [serialize_notification(n) for n in notifications],
                "count": len(notifications),
            },
            message=f"{len(notifications)} notification(s) on {day.isoformat()}"
        )


def register_list_today_tool(mcp_server, commands, clock=None):
    """Register list_today tool with MCP server"""
    from coach_app.mcp.server import MCPTool

    tool_instance = ListTodayTool(commands, clock) if clock else ListTodayTool(commands)
    tool = MCPTool(
        name="list_today",
        description="List the user's scheduled notifications for a day (today by default)",
        parameters={
            "type": "object",
            "properties": {
                "user_id": {"type": "string", "description": "User ID"},
                "date": {"type": "string", "format": "date", "description": "Day to list (YYYY-MM-DD, optional)"},
                "include_all": {"type": "boolean", "description": "Include sent, failed and cancelled notifications (optional)"}
            },
            "required": ["user_id"]
        },
        handler=tool_instance.run
    )

    mcp_server.register_tool(tool)
