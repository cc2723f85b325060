"""RallyScout - volleyball point-by-point replay and statistics."""

__version__ = "0.1.0"
