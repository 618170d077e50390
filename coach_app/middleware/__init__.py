"""Request authentication and CORS."""
