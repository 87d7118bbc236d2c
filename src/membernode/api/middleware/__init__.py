"""Member Node API middleware."""
