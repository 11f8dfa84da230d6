"""StoreOps - customer analytics for the operations dashboard."""

__version__ = "1.0.0"
