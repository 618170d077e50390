"""Notification tools exposed to the interpreter."""
