"""Function-call endpoint for the natural-language interpreter."""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from coach_app.mcp.server import MCPServer
from coach_app.middleware.auth import CurrentUser, ensure_same_user, get_current_user

router = APIRouter(tags=["Commands"])


def get_mcp_server(request: Request) -> MCPServer:
    return request.app.state.mcp_server


@router.get("/commands/schemas", response_model=Dict[str, Any])
async def tool_schemas(
    current_user: CurrentUser = Depends(get_current_user),
    mcp_server: MCPServer = Depends(get_mcp_server),
):
    """JSON schemas of every tool, in the shape function-calling models expect."""
    return {"tools": list(mcp_server.get_tool_schemas().values())}


@router.post("/{user_id}/commands/{tool_name}", response_model=Dict[str, Any])
async def invoke_command(
    user_id: str,
    tool_name: str,
    arguments: Dict[str, Any] = Body(default_factory=dict),
    current_user: CurrentUser = Depends(get_current_user),
    mcp_server: MCPServer = Depends(get_mcp_server),
):
    """
    Run one tool call for the authenticated user.

    The path user always wins over any ``user_id`` in the arguments. Tool
    failures come back as ``{"success": false, "error": ...}`` with status 200,
    the same as they would to the interpreter.
    """
    ensure_same_user(user_id, current_user)
    if tool_name not in mcp_server.tools:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown tool '{tool_name}'. Available tools: {mcp_server.list_tools()}"
        )

    arguments = dict(arguments)
    arguments["user_id"] = user_id
    return await mcp_server.invoke_tool(tool_name, **arguments)
