"""Coach notification scheduling and delivery service."""
