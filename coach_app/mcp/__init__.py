"""
MCP (Model Context Protocol) Server Package

Function-calling tools through which the natural-language interpreter lists,
schedules, reschedules, snoozes, duplicates, cancels and deletes a user's
notifications. Tools never touch the database directly.
"""
