"""Member Node HTTP API."""
