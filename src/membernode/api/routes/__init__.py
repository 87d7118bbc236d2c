"""Member Node API routes."""
