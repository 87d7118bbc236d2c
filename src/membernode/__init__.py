"""DataONE Member Node adapter over a data repository."""

__version__ = "0.1.0"
