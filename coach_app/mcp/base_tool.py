"""
MCP Base Tool Interface

Provides base functionality for all notification tools:
- User ID validation
- Argument parsing (ISO-8601 instants, calendar dates)
- Mapping scheduling errors to the standard response envelope
- Logging
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Optional
from abc import ABC, abstractmethod
import logging

from coach_app.errors import SchedulerError
from coach_app.models.notification import Notification
from coach_app.schemas.notification import NotificationResponse
from coach_app.services.command_surface import CommandSurface
from coach_app.utils.time import parse_instant, utcnow

logger = logging.getLogger(__name__)


class MCPToolError(Exception):
    """Base exception for MCP tool errors"""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class BaseMCPTool(ABC):
    """
    Base class for all notification tools

    Subclasses implement ``execute`` and may raise MCPToolError or any
    SchedulerError; ``run`` turns both into the error envelope.
    """

    name = "tool"

    def __init__(self, commands: CommandSurface, clock: Callable[[], datetime] = utcnow):
        self.commands = commands
        self.clock = clock

    def validate_user_id(self, user_id: str) -> None:
        """
        Validate that user_id is provided and non-empty

        Raises:
            MCPToolError: If user_id is invalid
        """
        if not user_id or not isinstance(user_id, str):
            logger.error("MCP tool called without valid user_id")
            raise MCPToolError(
                code="UNAUTHORIZED",
                message="Invalid or missing user_id",
                details={"field": "user_id"}
            )

    def require(self, name: str, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MCPToolError(
                code="VALIDATION_ERROR",
                message=f"{name} is required",
                details={"field": name}
            )
        return value

    def parse_instant(self, name: str, value: Any) -> Optional[datetime]:
        """ISO-8601 string to naive UTC; offset-less values are read as UTC."""
        if value is None:
            return None
        try:
            return parse_instant(str(value))
        except ValueError:
            raise MCPToolError(
                code="VALIDATION_ERROR",
                message=f"{name} must be an ISO-8601 date-time",
                details={"field": name, "value": value}
            )

    def parse_date(self, name: str, value: Any) -> Optional[date]:
        if value is None or value == "":
            return None
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            raise MCPToolError(
                code="VALIDATION_ERROR",
                message=f"{name} must be a date (YYYY-MM-DD)",
                details={"field": name, "value": value}
            )

    def log_tool_invocation(self, tool_name: str, user_id: str, params: Dict[str, Any]) -> None:
        """
        Log MCP tool invocation for audit trail

        Args:
            tool_name: Name of the tool being invoked
            user_id: User making the request
            params: Tool parameters (sensitive data should be redacted)
        """
        safe_params = {k: v for k, v in params.items() if k not in ['password', 'token', 'secret']}

        logger.info(
            f"MCP Tool Invocation: {tool_name} | User: {user_id} | Params: {safe_params}"
        )

    async def run(self, **kwargs) -> Dict[str, Any]:
        """Execute and wrap every expected failure in the error envelope."""
        self.log_tool_invocation(self.name, kwargs.get("user_id"), kwargs)
        try:
            self.validate_user_id(kwargs.get("user_id"))
            return await self.execute(**kwargs)
        except MCPToolError as e:
            logger.warning(f"Tool {self.name} rejected call: {e.code} {e.message}")
            return create_error_response(e)
        except SchedulerError as e:
            logger.info(f"Tool {self.name} failed: {e.code} {e.message}")
            return create_error_response(MCPToolError(e.code, e.message, e.details))

    @abstractmethod
    async def execute(self, **kwargs) -> Dict[str, Any]:
        """
        Execute the tool logic

        Must be implemented by subclasses

        Args:
            **kwargs: Tool-specific parameters (must include user_id)

        Returns:
            Tool execution result
        """
        pass


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return NotificationResponse.from_model(notification).model_dump(mode="json")


def create_error_response(error: MCPToolError) -> Dict[str, Any]:
    """
    Create a standardized error response

    Args:
        error: The MCPToolError to convert

    Returns:
        Standardized error response dictionary
    """
    return {
        "success": False,
        "error": {
            "code": error.code,
            "message": error.message,
            "details": error.details
        }
    }


def create_success_response(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a standardized success response

    Args:
        data: The response data
        message: Optional success message

    Returns:
        Standardized success response dictionary
    """
    response = {
        "success": True,
        "data": data
    }

    if message:
        response["message"] = message

    return response
